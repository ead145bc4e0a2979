"""PromptEngine / response schema 测试。"""
import orjson

from call_tagging.common.enums import ResponseMode
from call_tagging.llm_adapter.prompt.engine import USER_PROMPT_PREFIX, PromptEngine
from call_tagging.llm_adapter.prompt.schema import build_response_schema, tier_schema


def test_messages_shape():
    msgs = PromptEngine().build_messages("SYSTEM TEXT", {"callerId": "X1", "transcript": "hi"})
    assert msgs[0]["role"] == "system"
    assert msgs[0]["content"][0]["text"] == "SYSTEM TEXT"
    assert msgs[0]["content"][0]["cache_control"] == {"type": "ephemeral"}
    assert msgs[1]["role"] == "user"
    assert msgs[1]["content"].startswith(USER_PROMPT_PREFIX)
    payload = orjson.loads(msgs[1]["content"][len(USER_PROMPT_PREFIX):])
    assert payload == {"callerId": "X1", "transcript": "hi"}


def test_cache_marker_optional():
    msgs = PromptEngine(cache_system_prompt=False).build_messages("S", {})
    assert "cache_control" not in msgs[0]["content"][0]


def test_response_format_modes():
    schema = {"type": "object"}
    strict = PromptEngine.response_format(ResponseMode.JSON_SCHEMA, schema)
    assert strict["type"] == "json_schema"
    assert strict["json_schema"]["strict"] is True
    assert strict["json_schema"]["schema"] is schema
    assert PromptEngine.response_format(ResponseMode.JSON_OBJECT) == {"type": "json_object"}


def test_tier_schema_single_vs_multi():
    single = tier_schema(1, ["B", "A"])
    assert single["required"] == ["value", "reason"]
    assert single["properties"]["value"]["enum"] == ["A", "B"]

    multi = tier_schema(2)
    assert multi["properties"]["values"]["type"] == "array"
    assert "enum" not in multi["properties"]["values"]["items"]


def test_response_schema_uses_vocabulary(vocabulary):
    schema = build_response_schema(vocabulary)
    assert schema["additionalProperties"] is False
    assert set(schema["required"]) == set(schema["properties"])
    tier4 = schema["properties"]["tier4"]["properties"]["value"]["enum"]
    assert tier4 == ["REFRIGERATOR", "UNKNOWN_APPLIANCE", "WASHER"]
    tier9 = schema["properties"]["tier9"]["properties"]["values"]["items"]["enum"]
    assert tier9 == ["LANGUAGE_BARRIER"]
