"""
Loading and validation of the LinkScout pipeline configuration.
Pydantic describes the schema; YAML/JSON files and ``LINK_SCOUT_*``
environment variables supply the values.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

ENV_PREFIX = "LINK_SCOUT_"

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; LinkScoutBot/1.0; +https://github.com/link-scout)"


class PipelineConfig(BaseModel):
    """Tunables for the content acquisition pipeline. Durations are seconds."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    # content cache
    cache_capacity: int = Field(100, ge=1, description="Maximum number of cached URLs.")
    cache_ttl: float = Field(24 * 60 * 60, gt=0, description="Lifetime of a cache entry.")
    cache_cleanup_interval: float = Field(60 * 60, gt=0, description="Period of the expiry sweep.")

    # rate limiting
    rate_limit_window: float = Field(60.0, gt=0, description="Length of one rate-limit window.")
    rate_limit_fetch_max: int = Field(10, ge=1, description="Requests per window, single fetch endpoint.")
    rate_limit_api_max: int = Field(20, ge=1, description="Requests per window, generic API endpoints.")
    rate_limit_cleanup_interval: float = Field(60.0, gt=0, description="Period of the window sweep.")

    # fetching
    fetch_timeout: float = Field(15.0, gt=0, description="Absolute deadline of one content fetch.")
    resolve_timeout: float = Field(5.0, gt=0, description="Deadline of one redirect probe.")
    max_retries: int = Field(2, ge=0, description="Retries of a content fetch.")
    retry_initial_delay: float = Field(0.5, ge=0, description="First backoff delay.")
    retry_max_delay: float = Field(30.0, ge=0, description="Backoff ceiling.")
    retry_backoff_factor: float = Field(2.0, ge=1, description="Backoff multiplier.")
    max_redirects: int = Field(10, ge=0, description="Hop cap for redirect resolution.")
    max_response_bytes: int = Field(2 * 1024 * 1024, ge=1, description="Body bytes read per response.")
    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1, description="User-Agent header.")

    # input shape
    max_batch_size: int = Field(10, ge=1, description="URLs fetched per request.")
    max_request_urls: int = Field(20, ge=1, description="Raw URLs accepted per request.")
    max_url_length: int = Field(2048, ge=16, description="Hard cap on URL length.")
    nested_depth: int = Field(5, ge=0, description="Recursion limit of nested URL extraction.")

    # output budgets
    max_content_chars: int = Field(5000, ge=1, description="Characters kept per fetched URL.")
    max_combined_chars: int = Field(10000, ge=1, description="Characters sent to the analyzer.")

    # downstream analysis
    analysis_endpoint: Optional[HttpUrl] = Field(None, description="Text-analysis service URL.")
    analysis_api_key: Optional[str] = Field(None, description="API key for the analysis service.")
    analysis_timeout: float = Field(30.0, gt=0, description="Deadline of one analysis call.")
    analysis_max_retries: int = Field(3, ge=0, description="Retries of an analysis call.")
    analysis_initial_delay: float = Field(1.0, ge=0, description="First analysis backoff delay.")

    @field_validator("user_agent", mode="before")
    def _strip_user_agent(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def _check_budgets(self) -> PipelineConfig:
        if self.max_batch_size > self.max_request_urls:
            raise ValueError("max_batch_size must not exceed max_request_urls")
        if self.retry_initial_delay > self.retry_max_delay:
            raise ValueError("retry_initial_delay must not exceed retry_max_delay")
        return self

    def rate_limits(self) -> dict[str, tuple[float, int]]:
        """Window/max pairs per endpoint class."""
        return {
            "fetch": (self.rate_limit_window, self.rate_limit_fetch_max),
            "api": (self.rate_limit_window, self.rate_limit_api_max),
        }


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def _env_overrides(env: Mapping[str, str]) -> dict[str, str]:
    known = PipelineConfig.model_fields
    overrides: dict[str, str] = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            overrides[name] = value
    return overrides


def load_config(
    path: Union[str, Path, None] = None,
    env: Optional[Mapping[str, str]] = None,
) -> PipelineConfig:
    """
    Read YAML or JSON, apply ``LINK_SCOUT_*`` overrides and return a validated
    PipelineConfig. An explicit path that does not exist raises FileNotFoundError;
    without a path the default file is used when present, built-in defaults otherwise.
    """
    data: dict[str, Any] = {}
    path_obj: Optional[Path] = None
    if path is None:
        if _DEFAULT_CFG.is_file():
            path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    if path_obj is not None:
        suffix = path_obj.suffix.lower()
        if suffix in (".yaml", ".yml"):
            data = _read_yaml(path_obj)
        elif suffix == ".json":
            data = _read_json(path_obj)
        else:
            raise ValueError(f"Unsupported config format: {suffix}")

    data.update(_env_overrides(os.environ if env is None else env))
    return PipelineConfig(**data)
