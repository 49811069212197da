# File: tests/test_analysis.py
import json

import pytest

from link_scout.analysis import (
    Document,
    KeywordAnalyzer,
    RemoteAnalyzer,
    build_prompt,
    generate_tags,
    parse_analysis_reply,
)
from link_scout.errors import AnalysisError
from link_scout.fetcher.models import TransportResponse
from link_scout.fetcher.retry import RetryOptions

ENDPOINT = "https://analysis.example.com/v1/generate"

REPLY = {
    "businessContent": "Acme builds web systems for retailers.",
    "mainBusiness": ["Web production", "System development"],
    "summaries": {"https://acme.example": "Web agency"},
    "companyInfo": {"companyName": "Acme", "email": "info@acme.example"},
}


def _service_reply(text: str, status: int = 200) -> TransportResponse:
    body = json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]}).encode()
    return TransportResponse(ENDPOINT, status, {"Content-Type": "application/json"}, body)


def test_generate_tags():
    tags = generate_tags("We offer consulting and website design for healthcare clinics")
    assert tags == ["Web production", "Consulting", "Design", "Healthcare"]
    assert generate_tags("nothing to see") == []


def test_build_prompt_respects_budget():
    docs = [Document("https://a.example", "a" * 80), Document("https://b.example", "b" * 80)]
    prompt = build_prompt(docs, budget=100)
    assert "[URL: https://a.example]" in prompt
    assert "a" * 80 in prompt
    assert "b" * 20 in prompt and "b" * 21 not in prompt
    assert '"businessContent"' in prompt


def test_parse_fenced_reply():
    result = parse_analysis_reply("Sure!\n```json\n" + json.dumps(REPLY) + "\n```\n")
    assert result.business_content.startswith("Acme builds web systems")
    assert "- Web production" in result.business_content
    assert result.summaries == {"https://acme.example": "Web agency"}
    assert result.company_info["companyName"] == "Acme"
    assert "Web production" in result.tags
    assert result.fallback is False


def test_parse_bare_reply():
    assert parse_analysis_reply(json.dumps({"businessContent": "x"})).business_content == "x"


@pytest.mark.parametrize("text", ["not json", "[1, 2]", "```json\n{broken\n```"])
def test_parse_rejects_garbage(text):
    with pytest.raises(AnalysisError):
        parse_analysis_reply(text)


@pytest.mark.asyncio()
async def test_keyword_analyzer():
    result = await KeywordAnalyzer().analyze([Document("https://a.example", "software development studio")])
    assert result.fallback is True
    assert result.tags == ["System development"]


@pytest.mark.asyncio()
async def test_remote_analyzer_success(transport):
    transport.add("POST", ENDPOINT, _service_reply(json.dumps(REPLY)))
    analyzer = RemoteAnalyzer(transport, ENDPOINT, api_key="k", retry=RetryOptions(initial_delay=0.0))
    result = await analyzer.analyze([Document("https://acme.example", "Acme web systems")])
    assert result.company_info["email"] == "info@acme.example"
    prompt = transport.payloads[0]["contents"][0]["parts"][0]["text"]
    assert "Acme web systems" in prompt


@pytest.mark.asyncio()
async def test_remote_analyzer_retries_server_errors(transport):
    transport.add(
        "POST",
        ENDPOINT,
        TransportResponse(ENDPOINT, 503, {}, b""),
        _service_reply(json.dumps(REPLY)),
    )
    analyzer = RemoteAnalyzer(transport, ENDPOINT, retry=RetryOptions(max_retries=2, initial_delay=0.0))
    await analyzer.analyze([Document("https://acme.example", "text")])
    assert transport.count("POST", ENDPOINT) == 2


@pytest.mark.asyncio()
async def test_remote_analyzer_failures_become_analysis_errors(transport):
    transport.add("POST", ENDPOINT, TransportResponse(ENDPOINT, 400, {}, b"bad request"))
    analyzer = RemoteAnalyzer(transport, ENDPOINT, retry=RetryOptions(initial_delay=0.0))
    with pytest.raises(AnalysisError):
        await analyzer.analyze([Document("https://acme.example", "text")])
    assert transport.count("POST", ENDPOINT) == 1


@pytest.mark.asyncio()
async def test_remote_analyzer_unexpected_shape(transport):
    transport.add("POST", ENDPOINT, TransportResponse(ENDPOINT, 200, {}, b'{"candidates": []}'))
    analyzer = RemoteAnalyzer(transport, ENDPOINT, retry=RetryOptions(initial_delay=0.0))
    with pytest.raises(AnalysisError):
        await analyzer.analyze([Document("https://acme.example", "text")])
