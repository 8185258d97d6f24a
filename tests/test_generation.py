import asyncio
import json

import pytest

from fakes import ScriptedEngine
from pagegen.ai_engine import AIEngineError, MockAIEngine
from pagegen.errors import (
    EmptyResponse,
    GenerationError,
    IncompleteResponse,
    MalformedResponse,
    ServiceError,
)
from pagegen.generation import GenerationClient, parse_generation_response
from pagegen.models import FUNNEL_STAGES
from pagegen.prompts import RESPONSE_SCHEMA, SYSTEM_PROMPT


@pytest.mark.parametrize("text", ["", "   \n\t", None])
def test_empty_body_is_empty_response(text):
    with pytest.raises(EmptyResponse):
        parse_generation_response(text)


def test_non_json_is_malformed():
    with pytest.raises(MalformedResponse):
        parse_generation_response("Sure! Here are your pages:")


def test_json_array_is_malformed():
    with pytest.raises(MalformedResponse):
        parse_generation_response("[1, 2, 3]")


def test_missing_section_is_incomplete(raw_funnel):
    del raw_funnel["pages"]

    with pytest.raises(IncompleteResponse) as exc_info:
        parse_generation_response(json.dumps(raw_funnel))

    assert "pages" in exc_info.value.detail


def test_null_section_is_incomplete(raw_funnel):
    raw_funnel["adCreative"] = None

    with pytest.raises(IncompleteResponse):
        parse_generation_response(json.dumps(raw_funnel))


@pytest.mark.parametrize("section", ["pages", "adCreative"])
def test_empty_section_is_malformed(generation_request, raw_funnel, section):
    raw_funnel[section] = {}

    assert parse_generation_response(json.dumps(raw_funnel))[section] == {}
    with pytest.raises(MalformedResponse):
        asyncio.run(GenerationClient(ScriptedEngine([json.dumps(raw_funnel)])).generate(generation_request))


def test_missing_ad_creative_is_incomplete(raw_funnel):
    del raw_funnel["adCreative"]

    with pytest.raises(IncompleteResponse) as exc_info:
        parse_generation_response(json.dumps(raw_funnel))

    assert exc_info.value.detail == "missing sections: adCreative"


def test_code_fences_are_stripped(raw_funnel):
    text = "```json\n" + json.dumps(raw_funnel) + "\n```"

    assert parse_generation_response(text) == raw_funnel


def test_contract_errors_are_generation_errors():
    with pytest.raises(GenerationError) as exc_info:
        parse_generation_response("{not json")

    assert exc_info.value.kind == "malformed_response"


def test_generate_with_mock_engine(generation_request):
    client = GenerationClient(MockAIEngine(), "mock")

    result = asyncio.run(client.generate(generation_request))

    assert list(result.pages) == FUNNEL_STAGES
    assert result.warnings == []
    assert len(result.ad_creative.tofu.ad_assets.headlines) == 15


def test_generate_passes_schema_and_settings(generation_request, raw_funnel):
    engine = ScriptedEngine([json.dumps(raw_funnel)])
    client = GenerationClient(engine, "scripted", temperature=0.3, max_tokens=1000)

    asyncio.run(client.generate(generation_request))

    call = engine.calls[0]
    assert call["system_prompt"] == SYSTEM_PROMPT
    assert call["response_schema"] == RESPONSE_SCHEMA
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 1000
    assert "https://x.com/aff" in call["user_prompt"]


def test_run_reports_progress_then_result(generation_request, raw_funnel):
    body = json.dumps(raw_funnel)
    engine = ScriptedEngine([body[:100], body[100:]])
    client = GenerationClient(engine, "scripted")

    async def collect():
        return [event async for event in client.run(generation_request)]

    events = asyncio.run(collect())

    assert events[0] == ("progress", 100)
    assert events[1] == ("progress", len(body))
    assert events[-1][0] == "result"


def test_engine_failure_becomes_service_error(generation_request):
    client = GenerationClient(ScriptedEngine(error=RuntimeError("connection reset by peer")), "scripted")

    with pytest.raises(ServiceError) as exc_info:
        asyncio.run(client.generate(generation_request))

    assert "connection reset by peer" in exc_info.value.message


def test_engine_http_error_becomes_service_error(generation_request):
    engine = ScriptedEngine(["{\"pages\":"], error=AIEngineError("HTTP 429"))

    with pytest.raises(ServiceError):
        asyncio.run(GenerationClient(engine).generate(generation_request))


def test_truncated_stream_is_malformed(generation_request, raw_funnel):
    body = json.dumps(raw_funnel)
    engine = ScriptedEngine([body[: len(body) // 2]])

    with pytest.raises(MalformedResponse):
        asyncio.run(GenerationClient(engine).generate(generation_request))
