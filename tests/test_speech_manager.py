# tests/test_speech_manager.py
import pytest

from interview_trainer.core.exceptions import AudioDecodeError, NetworkError, ServiceError
from interview_trainer.core.interfaces import AudioSink, Synthesizer, Transcriber
from interview_trainer.managers.speech import (
    SYNTHESIS_FAILED,
    TRANSCRIPTION_FAILED,
    SpeechManager,
)


class StubTranscriber(Transcriber):
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error

    async def transcribe(self, audio, mime_type="audio/wav", on_progress=None):
        if self.error is not None:
            raise self.error
        if on_progress is not None:
            on_progress(self.text)
        return self.text


class StubSynthesizer(Synthesizer):
    audio_format = "pcm_22050_16bit"

    def __init__(self, chunks=(), error=None):
        self.chunks = list(chunks)
        self.error = error

    async def synthesize(self, text):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class ListSink(AudioSink):
    def __init__(self):
        self.buffers = []

    async def play(self, buffer):
        self.buffers.append(buffer)


@pytest.mark.asyncio
async def test_transcribe_reports_progress():
    seen = []
    manager = SpeechManager(StubTranscriber("我的回答"), StubSynthesizer())
    assert await manager.transcribe(b"audio", on_progress=seen.append) == "我的回答"
    assert seen == ["我的回答"]
    assert manager.supports_realtime is False


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    NetworkError("down", provider="paraformer"),
    AudioDecodeError("bad audio"),
])
async def test_transcription_failures_become_service_error(error):
    manager = SpeechManager(StubTranscriber(error=error), StubSynthesizer())
    with pytest.raises(ServiceError) as exc_info:
        await manager.transcribe(b"audio")
    assert exc_info.value.user_message == TRANSCRIPTION_FAILED
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_realtime_session_requires_realtime_provider():
    manager = SpeechManager(StubTranscriber(), StubSynthesizer())
    with pytest.raises(ServiceError):
        await manager.open_realtime_session()


@pytest.mark.asyncio
async def test_synthesis_failure_mid_stream_becomes_service_error():
    manager = SpeechManager(StubTranscriber(),
                            StubSynthesizer([b"\x00\x00"], error=NetworkError("cut", provider="cosyvoice")))
    received = []
    with pytest.raises(ServiceError) as exc_info:
        async for chunk in manager.synthesize("你好"):
            received.append(chunk)
    assert received == [b"\x00\x00"]
    assert exc_info.value.user_message == SYNTHESIS_FAILED


@pytest.mark.asyncio
async def test_speak_plays_every_buffer():
    sink = ListSink()
    manager = SpeechManager(StubTranscriber(), StubSynthesizer([b"\x01\x00\x02", b"\x00"]))
    assert await manager.speak("你好", sink) == 4
    assert [len(buffer.samples) for buffer in sink.buffers] == [1, 1]
    assert sink.buffers[0].sample_rate == 22050


@pytest.mark.asyncio
async def test_speak_with_non_pcm_format_is_a_service_error():
    manager = SpeechManager(StubTranscriber(), StubSynthesizer([b"\x00\x00"]), synthesis_format="mp3")
    with pytest.raises(ServiceError):
        await manager.speak("你好", ListSink())
