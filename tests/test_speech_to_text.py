# tests/test_speech_to_text.py
import asyncio
import base64
import json

import httpx
import pytest

from interview_trainer.config import Provider, ProviderConfig
from interview_trainer.core.exceptions import ConfigError, NetworkError
from interview_trainer.providers import create_transcriber
from interview_trainer.providers.speech_to_text import (
    DEFAULT_MULTIMODAL_ENDPOINT,
    FINISH_MESSAGE,
    RECOGNITION_PROMPT,
    DashScopeMultimodalTranscriber,
    ParaformerRealtimeTranscriber,
    QwenChatTranscriber,
    RestTranscriber,
    chat_audio_format,
)

from conftest import sse_body


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, messages=(), hang_up=False):
        self.sent = []
        self.closed = 0
        self._incoming = asyncio.Queue()
        for message in messages:
            self._incoming.put_nowait(message)
        if hang_up:
            self._incoming.put_nowait(None)

    def push(self, message):
        self._incoming.put_nowait(message)

    async def send(self, data):
        self.sent.append(data)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def close(self):
        self.closed += 1
        self._incoming.put_nowait(None)


def connector(websocket):
    calls = []

    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        return websocket

    connect.calls = calls
    return connect


class EndlessFrames:
    """Microphone-like frame source that never ends on its own."""

    def __init__(self):
        self.released = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.sleep(0.01)
        return b"\x00\x01" * 160

    async def aclose(self):
        self.released += 1


def realtime_config(**overrides):
    return ProviderConfig(provider=Provider.PARAFORMER, api_key="sk-test",
                          model="paraformer-realtime-v2", **overrides)


@pytest.mark.asyncio
async def test_realtime_session_sends_handshake_and_collects_sentences():
    websocket = FakeWebSocket()
    connect = connector(websocket)
    progress = []
    heard = asyncio.Event()

    def on_progress(text):
        progress.append(text)
        if len(progress) == 2:
            heard.set()

    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=connect)
    session = await transcriber.open_session(on_progress).start()
    await session.send_audio_frame(b"\x00\x00" * 3200)
    websocket.push(json.dumps({"sentence": "你好，"}))
    websocket.push(json.dumps({"payload": {"output": {"sentence": {"text": "半句", "sentence_end": False}}}}))
    websocket.push(json.dumps({"payload": {"output": {"sentence": {"text": "我是考生", "sentence_end": True}}}}))
    await asyncio.wait_for(heard.wait(), timeout=1)
    text = await session.stop()

    assert text == "你好，我是考生"
    assert progress == ["你好，", "你好，我是考生"]
    url, kwargs = connect.calls[0]
    assert url.startswith("wss://dashscope.aliyuncs.com")
    assert kwargs["additional_headers"]["Authorization"] == "Bearer sk-test"
    assert json.loads(websocket.sent[0]) == {
        "model": "paraformer-realtime-v2",
        "format": "pcm",
        "sample_rate": 16000,
        "api_key": "sk-test",
    }
    assert websocket.sent[1] == b"\x00\x00" * 3200


@pytest.mark.asyncio
async def test_stopping_mid_stream_releases_resources_once():
    websocket = FakeWebSocket()
    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=connector(websocket))
    got_text = asyncio.Event()
    session = await transcriber.open_session(lambda text: got_text.set()).start()
    frames = EndlessFrames()
    pump = session.stream_from(frames)

    websocket.push(json.dumps({"sentence": "已经说到这里"}))
    await asyncio.wait_for(got_text.wait(), timeout=1)
    results = await asyncio.gather(session.stop(), session.stop())
    again = await session.stop()

    assert results == ["已经说到这里", "已经说到这里"]
    assert again == "已经说到这里"
    assert frames.released == 1
    assert websocket.closed == 1
    assert pump.cancelled() or pump.done()
    sent_after_stop = len(websocket.sent)
    await asyncio.sleep(0.03)
    assert len(websocket.sent) == sent_after_stop


@pytest.mark.asyncio
async def test_realtime_transcribe_uploaded_pcm():
    websocket = FakeWebSocket(messages=[json.dumps({"sentence": "第一句"})], hang_up=True)
    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=connector(websocket))
    text = await transcriber.transcribe(b"\x01\x00" * 4000, "audio/pcm")

    assert text == "第一句"
    frames = websocket.sent[1:-1]
    assert [len(frame) for frame in frames] == [6400, 1600]
    assert json.loads(websocket.sent[-1]) == FINISH_MESSAGE


@pytest.mark.asyncio
async def test_realtime_transcribe_ends_audio_when_server_keeps_listening():
    websocket = FakeWebSocket(messages=[json.dumps({"sentence": "你好"})])
    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=connector(websocket),
                                                finish_grace=0.05)
    text = await asyncio.wait_for(transcriber.transcribe(b"\x01\x00" * 16000, "audio/pcm"), timeout=1)

    assert text == "你好"
    assert json.loads(websocket.sent[-1]) == FINISH_MESSAGE
    assert websocket.closed == 1


@pytest.mark.asyncio
async def test_realtime_connect_failure_becomes_network_error():
    async def refuse(url, **kwargs):
        raise OSError("connection refused")

    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=refuse)
    with pytest.raises(NetworkError):
        await transcriber.open_session().start()


@pytest.mark.asyncio
async def test_failed_handshake_closes_the_socket():
    class RejectingWebSocket(FakeWebSocket):
        async def send(self, data):
            raise OSError("broken pipe")

    websocket = RejectingWebSocket()
    transcriber = ParaformerRealtimeTranscriber(realtime_config(), connect=connector(websocket))
    session = transcriber.open_session()
    with pytest.raises(NetworkError):
        await session.start()
    assert websocket.closed == 1
    assert not session.is_running


@pytest.mark.asyncio
async def test_multimodal_transcriber_streams_progress():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        captured["url"] = str(request.url)
        frames = [
            {"output": {"choices": [{"message": {"content": [{"text": "我认为"}]}}]}},
            {"output": {"choices": [{"message": {"content": [{"text": "教育很重要"}]}}]}},
        ]
        return httpx.Response(200, content=sse_body(*frames))

    config = ProviderConfig(provider=Provider.DASHSCOPE, api_key="sk-test")
    transcriber = DashScopeMultimodalTranscriber(config, transport=httpx.MockTransport(handler))
    progress = []
    text = await transcriber.transcribe(b"RIFF....", "audio/wav", progress.append)

    assert text == "我认为教育很重要"
    assert progress == ["我认为", "我认为教育很重要"]
    assert captured["url"] == DEFAULT_MULTIMODAL_ENDPOINT
    assert captured["body"]["model"] == "qwen-audio-asr"
    assert captured["body"]["result_format"] == "message"
    audio_item = captured["body"]["messages"][0]["content"][0]["audio"]
    assert base64.b64decode(audio_item) == b"RIFF...."


@pytest.mark.asyncio
async def test_qwen_transcriber_sends_input_audio_and_accumulates_deltas():
    captured = {}

    def chunk(content):
        return {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "created": 0,
            "model": "qwen-omni-turbo",
            "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": None}],
        }

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        body = sse_body(chunk("请"), chunk("听题"), "[DONE]")
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = ProviderConfig(provider=Provider.QWEN, api_key="sk-test")
    transcriber = QwenChatTranscriber(config, http_client=http_client)
    try:
        text = await transcriber.transcribe(b"ID3audio", "audio/mp3")
    finally:
        await http_client.aclose()

    assert text == "请听题"
    assert captured["url"].endswith("/compatible-mode/v1/chat/completions")
    content = captured["body"]["messages"][0]["content"]
    assert content[0]["type"] == "input_audio"
    assert content[0]["input_audio"]["format"] == "mp3"
    assert content[1] == {"type": "text", "text": RECOGNITION_PROMPT}


@pytest.mark.asyncio
async def test_qwen_transcriber_error_status_becomes_network_error():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(
        lambda request: httpx.Response(500, json={"error": {"message": "boom"}})
    ))
    transcriber = QwenChatTranscriber(ProviderConfig(provider=Provider.QWEN, api_key="k"),
                                      http_client=http_client)
    try:
        with pytest.raises(NetworkError) as exc_info:
            await transcriber.transcribe(b"audio")
    finally:
        await http_client.aclose()
    assert exc_info.value.status_code == 500


@pytest.mark.parametrize("mime_type, expected", [
    ("audio/wav", "wav"),
    ("audio/mp3", "mp3"),
    ("audio/m4a", "m4a"),
    ("audio/pcm", "pcm"),
    ("audio/webm;codecs=opus", "wav"),
    ("", "wav"),
])
def test_chat_audio_format(mime_type, expected):
    assert chat_audio_format(mime_type) == expected


@pytest.mark.asyncio
async def test_rest_transcriber_uploads_multipart():
    captured = {}

    def handler(request):
        captured["body"] = request.content
        captured["type"] = request.headers["Content-Type"]
        return httpx.Response(200, json={"text": "识别结果"})

    config = ProviderConfig(provider=Provider.REST, api_key="k", endpoint="https://stt.example.com/v1")
    transcriber = RestTranscriber(config, transport=httpx.MockTransport(handler))
    assert await transcriber.transcribe(b"wavdata") == "识别结果"
    assert captured["type"].startswith("multipart/form-data")
    assert b'name="audio"; filename="recording.wav"' in captured["body"]


def test_rest_transcriber_requires_endpoint():
    with pytest.raises(ConfigError):
        create_transcriber(ProviderConfig(provider=Provider.REST, api_key="k"))


def test_transcriber_table():
    key = {"api_key": "k"}
    assert isinstance(create_transcriber(ProviderConfig(provider=Provider.ALIYUN, **key)),
                      DashScopeMultimodalTranscriber)
    assert create_transcriber(ProviderConfig(provider=Provider.PARAFORMER, **key)).realtime is True
    assert create_transcriber(ProviderConfig(provider=Provider.QWEN, **key)).realtime is False
