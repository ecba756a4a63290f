# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import pytest

from adapters.live.prompts import SYSTEM_PROMPT_V1, TOOL_DECLARATIONS_V1
from protocol.live_messages import (
    LiveProtocolError,
    ToolInvocation,
    parse_server_message,
    realtime_audio_message,
    sample_rate_from_mime,
    setup_message,
    tool_response_message,
)
from session.live_config import LiveSessionConfig


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

def test_parse_setup_complete():
    message = parse_server_message('{"setupComplete": {}}')

    assert message.setup_complete
    assert not message.is_empty


def test_parse_tool_calls_in_order():
    raw = json.dumps({
        "toolCall": {
            "functionCalls": [
                {"id": "1", "name": "scanSystem", "args": {"mode": "QUICK"}},
                {"id": "2", "name": "checkIntegrity"},
            ],
        },
    })

    message = parse_server_message(raw)

    assert message.tool_calls == (
        ToolInvocation(id="1", name="scanSystem", args={"mode": "QUICK"}),
        ToolInvocation(id="2", name="checkIntegrity", args={}),
    )


def test_parse_audio_parts_and_interruption_together():
    raw = json.dumps({
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"text": "ignored"},
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "AAAA"}},
                    {"inlineData": {"mimeType": "audio/pcm", "data": "BBBB"}},
                ],
            },
            "interrupted": True,
        },
    })

    message = parse_server_message(raw)

    assert [c.data for c in message.audio_chunks] == ["AAAA", "BBBB"]
    assert message.audio_chunks[0].sample_rate_hz == 24_000
    assert message.audio_chunks[1].sample_rate_hz is None
    assert message.interrupted


def test_parse_accepts_bytes_and_mappings():
    assert parse_server_message(b'{"serverContent": {"turnComplete": true}}').turn_complete
    assert parse_server_message({"setupComplete": {}}).setup_complete


def test_unknown_fields_yield_empty_message():
    assert parse_server_message('{"usageMetadata": {"totalTokenCount": 3}}').is_empty


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
def test_parse_rejects_non_objects(raw: str):
    with pytest.raises(LiveProtocolError):
        parse_server_message(raw)


def test_malformed_call_keeps_siblings_audio_and_interruption():
    message = parse_server_message({
        "toolCall": {
            "functionCalls": [
                {"id": "a", "name": "scanSystem", "args": {}},
                {"id": "b", "args": {}},
            ],
        },
        "serverContent": {
            "modelTurn": {"parts": [{"inlineData": {"data": "AAAA"}}]},
            "interrupted": True,
        },
    })

    good, bad = message.tool_calls
    assert good == ToolInvocation(id="a", name="scanSystem", args={})
    assert bad.id == "b"
    assert bad.name == ""
    assert bad.error == "function call has no name"
    assert [c.data for c in message.audio_chunks] == ["AAAA"]
    assert message.interrupted


def test_non_object_args_are_flagged_not_raised():
    message = parse_server_message({
        "toolCall": {"functionCalls": [{"id": 7, "name": "openWebsite", "args": ["google"]}]},
    })

    (call,) = message.tool_calls
    assert call.id == "7"
    assert call.name == "openWebsite"
    assert call.args == {}
    assert call.error == "function call args must be an object, got list"


@pytest.mark.parametrize("entry", [{"name": "scanSystem"}, {"id": "", "name": "x"}, {"id": None}, "junk"])
def test_calls_without_id_are_set_aside(entry):
    message = parse_server_message({
        "toolCall": {"functionCalls": [entry, {"id": "ok", "name": "checkIntegrity"}]},
    })

    assert [c.id for c in message.tool_calls] == ["ok"]
    assert len(message.rejected_tool_calls) == 1
    assert message.rejected_tool_calls[0].startswith("function call without id")


def test_sample_rate_from_mime():
    assert sample_rate_from_mime("audio/pcm;rate=16000") == 16_000
    assert sample_rate_from_mime("audio/pcm") is None
    assert sample_rate_from_mime(None) is None


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_setup_message_carries_voice_prompt_and_tools():
    config = LiveSessionConfig(
        voice="Puck",
        tools=TOOL_DECLARATIONS_V1,
        system_prompt=SYSTEM_PROMPT_V1,
    )

    setup = setup_message(config)["setup"]

    assert setup["model"] == config.model
    assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
    voice = setup["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
    assert voice == {"voiceName": "Puck"}
    assert setup["systemInstruction"]["parts"][0]["text"] == SYSTEM_PROMPT_V1
    names = [d["name"] for d in setup["tools"][0]["functionDeclarations"]]
    assert names == [
        "scanSystem",
        "checkIntegrity",
        "openWebsite",
        "openFile",
        "manageSystemPower",
        "adjustVolume",
        "changeTheme",
        "changeVoice",
    ]


def test_setup_message_omits_empty_sections():
    setup = setup_message(LiveSessionConfig())["setup"]

    assert "tools" not in setup
    assert "systemInstruction" not in setup


def test_realtime_audio_message_shape():
    assert realtime_audio_message("AAAA", "audio/pcm;rate=16000") == {
        "realtimeInput": {
            "mediaChunks": [{"mimeType": "audio/pcm;rate=16000", "data": "AAAA"}],
        },
    }


def test_tool_response_message_shape():
    result = {"error": "boom", "status": "FAILED"}

    assert tool_response_message("1", "X", result) == {
        "toolResponse": {
            "functionResponses": [
                {"id": "1", "name": "X", "response": {"result": {"error": "boom", "status": "FAILED"}}},
            ],
        },
    }
