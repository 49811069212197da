# setup.py
from setuptools import setup, find_packages

setup(
    name="link_scout",
    version="0.1.0",
    description="Resilient URL content acquisition pipeline LinkScout",
    packages=find_packages(exclude=["tests", "tests.*"]),  # finds the link_scout package
    install_requires=[
        "aiohttp>=3.9",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "click>=8.0",
        "beautifulsoup4>=4.12",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "link-scout=link_scout.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
