"""Tests for the outbound adapters: Z-API transport, OpenAI speech/transcription, prompt building."""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.state.session import Stage
from app.transport.zapi import MockTransport, ZApiTransport
from app.tutor.instruction_builder import build_messages, build_system_prompt
from app.voice.stt import OpenAIWhisperSTT, _filename_for
from app.voice.tts import OpenAISpeechTTS

from conftest import make_record


# ─── Z-API transport ─────────────────────────────────────────────────────────

def _patched_client(status_code=200, error=None):
    """An httpx.AsyncClient stand-in: the factory and the client its context yields."""
    client = MagicMock()
    if error is not None:
        client.post = AsyncMock(side_effect=error)
    else:
        request = httpx.Request("POST", "https://api.z-api.io")
        client.post = AsyncMock(return_value=httpx.Response(status_code, request=request, text="{}"))
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context), client


class TestZApiTransport:
    async def test_send_text(self):
        factory, client = _patched_client()
        transport = ZApiTransport(instance_id="INST", instance_token="TOK", client_token="CT")
        with patch("app.transport.zapi.httpx.AsyncClient", factory):
            assert await transport.send_text("244923000111", "Olá")

        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == "https://api.z-api.io/instances/INST/token/TOK/send-text"
        assert kwargs["json"] == {"phone": "244923000111", "message": "Olá"}
        assert kwargs["headers"]["Client-Token"] == "CT"

    async def test_send_audio_as_data_uri(self):
        factory, client = _patched_client()
        transport = ZApiTransport(instance_id="INST", instance_token="TOK", client_token="")
        with patch("app.transport.zapi.httpx.AsyncClient", factory):
            assert await transport.send_audio("244923000111", b"ID3")

        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url.endswith("/send-audio")
        assert kwargs["json"]["audio"] == "data:audio/mpeg;base64,SUQz"
        assert "Client-Token" not in kwargs["headers"]

    async def test_http_error_returns_false(self):
        factory, _ = _patched_client(status_code=500)
        transport = ZApiTransport(instance_id="INST", instance_token="TOK")
        with patch("app.transport.zapi.httpx.AsyncClient", factory):
            assert not await transport.send_text("244923000111", "Olá")

    async def test_network_error_returns_false(self):
        factory, _ = _patched_client(error=httpx.ConnectError("down"))
        transport = ZApiTransport(instance_id="INST", instance_token="TOK")
        with patch("app.transport.zapi.httpx.AsyncClient", factory):
            assert not await transport.send_text("244923000111", "Olá")

    async def test_unexpected_error_returns_false(self):
        factory, _ = _patched_client(error=httpx.InvalidURL("bad host"))
        transport = ZApiTransport(instance_id="INST", instance_token="TOK")
        with patch("app.transport.zapi.httpx.AsyncClient", factory):
            assert not await transport.send_audio("244923000111", b"ID3")

    async def test_mock_transport_records(self):
        transport = MockTransport()
        await transport.send_text("1", "a")
        await transport.send_audio("1", b"x")
        await transport.send_text("2", "b")
        assert transport.texts_to("1") == ["a"]
        assert len(transport.sent) == 3


# ─── OpenAI speech ───────────────────────────────────────────────────────────

@pytest.fixture
def speech(tmp_path):
    tts = OpenAISpeechTTS(api_key="test-key", cache_dir=tmp_path)
    tts._client = MagicMock()
    tts._client.audio.speech.create.return_value.content = b"mp3-bytes"
    return tts


class TestOpenAISpeechTTS:
    def test_synthesize_and_cache(self, speech, tmp_path):
        assert speech.synthesize("Bonjour", "fr") == b"mp3-bytes"
        assert speech.synthesize("Bonjour", "fr") == b"mp3-bytes"
        speech._client.audio.speech.create.assert_called_once()
        kwargs = speech._client.audio.speech.create.call_args.kwargs
        assert kwargs["input"] == "Bonjour"
        assert kwargs["response_format"] == "mp3"
        assert "français" in kwargs["instructions"]
        assert len(list(tmp_path.glob("*.mp3"))) == 1

    def test_language_is_part_of_cache_key(self, speech):
        speech.synthesize("Taxi", "en")
        speech.synthesize("Taxi", "fr")
        assert speech._client.audio.speech.create.call_count == 2

    def test_failure_returns_none(self, speech):
        speech._client.audio.speech.create.side_effect = RuntimeError("quota")
        assert speech.synthesize("Hello", "en") is None

    def test_empty_text(self, speech):
        assert speech.synthesize("  ", "en") is None
        speech._client.audio.speech.create.assert_not_called()


# ─── OpenAI transcription ────────────────────────────────────────────────────

@pytest.fixture
def whisper():
    stt = OpenAIWhisperSTT(api_key="test-key", language="pt")
    stt._client = MagicMock()
    stt._client.audio.transcriptions.create.return_value.text = "  sou a Ana "
    return stt


class TestOpenAIWhisperSTT:
    def test_transcribe(self, whisper):
        assert whisper.transcribe(b"OggS", "voice.ogg") == "sou a Ana"
        kwargs = whisper._client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["language"] == "pt"
        assert kwargs["file"].name == "voice.ogg"

    def test_blank_transcript_is_none(self, whisper):
        whisper._client.audio.transcriptions.create.return_value.text = "   "
        assert whisper.transcribe(b"OggS") is None

    def test_failure_returns_none(self, whisper):
        whisper._client.audio.transcriptions.create.side_effect = RuntimeError("bad audio")
        assert whisper.transcribe(b"OggS") is None

    def test_transcribe_url(self, whisper):
        with patch("app.voice.stt.download_media", return_value=b"OggS") as download:
            assert whisper.transcribe_url("https://cdn.z-api.io/v/abc.ogg?sig=1") == "sou a Ana"
        download.assert_called_once_with("https://cdn.z-api.io/v/abc.ogg?sig=1")
        assert whisper._client.audio.transcriptions.create.call_args.kwargs["file"].name == "abc.ogg"

    def test_download_failure(self, whisper):
        with patch("app.voice.stt.download_media", side_effect=httpx.ConnectError("down")):
            assert whisper.transcribe_url("https://cdn.z-api.io/v/abc.ogg") is None

    def test_filename_fallback(self):
        assert _filename_for("https://cdn.z-api.io/media/12345") == "audio.ogg"


# ─── Prompt building ─────────────────────────────────────────────────────────

class TestInstructionBuilder:
    def test_prompt_mentions_lesson(self):
        record = make_record(stage=Stage.LEARNING, target_language="fr", name="Ana", lesson_index=1)
        prompt = build_system_prompt(record)
        assert "ALUNO: Ana" in prompt
        assert "francês" in prompt
        assert "Apresentar-se em francês" in prompt

    def test_prompt_without_language(self):
        assert "ainda não escolheu" in build_system_prompt(make_record())

    def test_history_window(self):
        record = make_record()
        for i in range(15):
            record.add_to_history("user" if i % 2 == 0 else "assistant", f"msg {i}", max_entries=20)
        messages = build_messages(record, "nova pergunta")
        assert messages[0]["role"] == "system"
        assert len(messages) == 1 + 10 + 1
        assert messages[1]["content"] == "msg 5"
        assert messages[-1] == {"role": "user", "content": "nova pergunta"}
