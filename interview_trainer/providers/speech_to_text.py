"""
Speech-to-text adapters.

Four upstream shapes are supported, each surfacing one transcript string:

- ``dashscope``/``aliyun``: multimodal chat with an audio item, streamed
- ``paraformer``: realtime duplex WebSocket, sentence by sentence
- ``qwen``: compatible-mode chat client with an ``input_audio`` item
- ``rest``: generic multipart upload returning ``{"text": ...}``
"""
import asyncio
import base64
import inspect
import json
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
import websockets
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from ..config import ProviderConfig
from ..core.exceptions import NetworkError
from ..core.interfaces import ProgressCallback, Transcriber
from ..processors.accumulator import DeltaAccumulator, accumulate_multimodal_content, chat_delta_texts
from ..processors.audio import RECOGNITION_SAMPLE_RATE, decode_to_pcm16, iter_pcm_frames
from ..processors.stream import iter_sse_frames
from .base import bearer_headers, open_stream, require_api_key, require_endpoint

logger = structlog.get_logger(__name__)

DEFAULT_MULTIMODAL_ENDPOINT = (
    "https://dashscope.aliyuncs.com/api/v1/services/aigc/multimodal-generation/generation"
)
DEFAULT_MULTIMODAL_MODEL = "qwen-audio-asr"
DEFAULT_REALTIME_ENDPOINT = "wss://dashscope.aliyuncs.com/api/v1/services/asr/paraformer-realtime"
DEFAULT_REALTIME_MODEL = "paraformer-realtime-v2"
DEFAULT_COMPATIBLE_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_QWEN_AUDIO_MODEL = "qwen-omni-turbo"

DEFAULT_FINISH_GRACE = 3.0
FINISH_MESSAGE = {"action": "finish-task"}

RECOGNITION_PROMPT = "请识别这段语音内容"
SUPPORTED_CHAT_AUDIO_FORMATS = ("wav", "mp3", "m4a", "pcm")


def _encode_audio(audio: bytes) -> str:
    return base64.b64encode(audio).decode("ascii")


def chat_audio_format(mime_type: Optional[str]) -> str:
    """Map a MIME type to a format the chat API accepts, defaulting to wav."""
    subtype = (mime_type or "").split(";")[0].split("/")[-1].strip().lower()
    return subtype if subtype in SUPPORTED_CHAT_AUDIO_FORMATS else "wav"


class DashScopeMultimodalTranscriber(Transcriber):
    realtime = False

    def __init__(self,
                 config: ProviderConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = require_api_key(config)
        self.model = config.model or DEFAULT_MULTIMODAL_MODEL
        self.endpoint = config.endpoint or DEFAULT_MULTIMODAL_ENDPOINT
        self.timeout = config.timeout
        self.provider = config.provider.value
        self._transport = transport

    def build_request(self, audio: bytes) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": [{"audio": _encode_audio(audio)}]}],
            "result_format": "message",
            "stream": True,
        }

    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        async with open_stream(
            "POST",
            self.endpoint,
            provider=self.provider,
            timeout=self.timeout,
            transport=self._transport,
            headers=bearer_headers(self.api_key),
            json=self.build_request(audio),
        ) as response:
            return await accumulate_multimodal_content(
                iter_sse_frames(response.aiter_bytes()), on_progress
            )


def _sentence_text(result: Any) -> Optional[str]:
    """
    Pull the recognised text out of one realtime message. Flat ``{"sentence"}``
    messages always count; DashScope task events only once the sentence ended.
    """
    if not isinstance(result, dict):
        return None
    sentence = result.get("sentence")
    if isinstance(sentence, str):
        return sentence or None
    output = (result.get("payload") or {}).get("output") or {}
    nested = output.get("sentence")
    if isinstance(nested, dict) and nested.get("sentence_end") and nested.get("text"):
        return nested["text"]
    return None


class RealtimeRecognition:
    """
    One realtime recognition session over a persistent WebSocket.

    ``stop()`` closes the connection, cancels the frame pump and the receiver
    and releases every registered audio resource. It runs its teardown once;
    later calls wait for that teardown and return the same transcript.
    """

    def __init__(self,
                 api_key: str,
                 model: str,
                 endpoint: str,
                 connect: Callable[..., Awaitable[Any]],
                 on_progress: Optional[ProgressCallback] = None,
                 audio_format: str = "pcm",
                 sample_rate: int = RECOGNITION_SAMPLE_RATE):
        self.model = model
        self.endpoint = endpoint
        self.audio_format = audio_format
        self.sample_rate = sample_rate
        self._api_key = api_key
        self._connect = connect
        self._accumulator = DeltaAccumulator(lambda frame: [], on_progress)
        self._ws: Any = None
        self._receiver: Optional[asyncio.Task] = None
        self._pump: Optional[asyncio.Task] = None
        self._resources: List[Any] = []
        self._stopping = False
        self._stopped = asyncio.Event()
        self.frames_sent = 0

    @property
    def text(self) -> str:
        return self._accumulator.text

    @property
    def is_running(self) -> bool:
        return self._ws is not None and not self._stopping

    async def start(self) -> "RealtimeRecognition":
        try:
            self._ws = await self._connect(
                self.endpoint,
                additional_headers=bearer_headers(self._api_key),
            )
            await self._ws.send(json.dumps({
                "model": self.model,
                "format": self.audio_format,
                "sample_rate": self.sample_rate,
                "api_key": self._api_key,
            }))
        except (OSError, websockets.WebSocketException) as e:
            logger.error("realtime_recognition_connect_failed", error=repr(e))
            await self._close_socket()
            self._ws = None
            raise NetworkError("Realtime recognition connection failed",
                               provider="paraformer") from e
        self._receiver = asyncio.create_task(self._receive())
        logger.info("realtime_recognition_started", model=self.model)
        return self

    async def _receive(self) -> None:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    continue
                try:
                    result = json.loads(message)
                except ValueError:
                    logger.warning("realtime_message_skipped", message=message[:200])
                    continue
                sentence = _sentence_text(result)
                if sentence:
                    await self._accumulator.append(sentence)
        except websockets.ConnectionClosed as e:
            logger.info("realtime_connection_closed", code=getattr(e.rcvd, "code", None))

    async def send_audio_frame(self, frame: bytes) -> None:
        if not self.is_running:
            return
        try:
            await self._ws.send(frame)
            self.frames_sent += 1
        except websockets.ConnectionClosed:
            logger.warning("realtime_frame_dropped", frames_sent=self.frames_sent)

    def add_resource(self, resource: Any) -> None:
        """Register something with ``aclose()`` or ``close()`` to release on stop."""
        self._resources.append(resource)

    def stream_from(self, frames: AsyncIterable[bytes]) -> asyncio.Task:
        """Push frames from ``frames`` in the background until it ends or the session stops."""
        self.add_resource(frames)
        self._pump = asyncio.create_task(self._pump_frames(frames))
        return self._pump

    async def _pump_frames(self, frames: AsyncIterable[bytes]) -> None:
        async for frame in frames:
            if not self.is_running:
                break
            await self.send_audio_frame(frame)

    async def wait_closed_by_server(self) -> None:
        if self._receiver is not None:
            await asyncio.shield(self._receiver)

    async def finish(self, grace: Optional[float] = DEFAULT_FINISH_GRACE) -> str:
        """
        Tell the server the audio has ended, keep collecting trailing sentences
        until it hangs up or ``grace`` seconds pass, then stop the session.
        """
        if self.is_running:
            try:
                await self._ws.send(json.dumps(FINISH_MESSAGE))
            except websockets.ConnectionClosed:
                logger.info("realtime_finish_after_close", frames_sent=self.frames_sent)
            try:
                await asyncio.wait_for(self.wait_closed_by_server(), timeout=grace)
            except asyncio.TimeoutError:
                logger.info("realtime_finish_grace_elapsed", grace=grace)
        return await self.stop()

    async def _close_socket(self) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.close()
        except websockets.WebSocketException as e:
            logger.warning("realtime_close_failed", error=repr(e))

    async def stop(self) -> str:
        if self._stopping:
            await self._stopped.wait()
            return self.text
        self._stopping = True
        try:
            current = asyncio.current_task()
            tasks = [task for task in (self._pump, self._receiver)
                     if task is not None and task is not current and not task.done()]
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self._close_socket()
            await self._release_resources()
        finally:
            self._stopped.set()
        logger.info("realtime_recognition_stopped",
                    frames_sent=self.frames_sent,
                    text_chars=len(self.text))
        return self.text

    async def _release_resources(self) -> None:
        resources, self._resources = self._resources, []
        for resource in resources:
            closer = getattr(resource, "aclose", None) or getattr(resource, "close", None)
            if closer is None:
                continue
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Keep releasing the rest; a failing release must not leak the others.
                logger.warning("realtime_resource_release_failed",
                               resource=type(resource).__name__, error=repr(e))

    async def __aenter__(self) -> "RealtimeRecognition":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


class ParaformerRealtimeTranscriber(Transcriber):
    realtime = True

    def __init__(self,
                 config: ProviderConfig,
                 connect: Optional[Callable[..., Awaitable[Any]]] = None,
                 finish_grace: float = DEFAULT_FINISH_GRACE):
        self.api_key = require_api_key(config)
        self.model = config.model or DEFAULT_REALTIME_MODEL
        self.endpoint = config.endpoint or DEFAULT_REALTIME_ENDPOINT
        self.timeout = config.timeout
        self.finish_grace = finish_grace
        self._connect = connect or websockets.connect

    def open_session(self, on_progress: Optional[ProgressCallback] = None) -> RealtimeRecognition:
        return RealtimeRecognition(
            api_key=self.api_key,
            model=self.model,
            endpoint=self.endpoint,
            connect=self._connect,
            on_progress=on_progress,
        )

    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        pcm = decode_to_pcm16(audio, mime_type)
        async with self.open_session(on_progress) as session:
            for frame in iter_pcm_frames(pcm):
                await session.send_audio_frame(frame)
            return await session.finish(self.finish_grace)


class QwenChatTranscriber(Transcriber):
    realtime = False

    def __init__(self,
                 config: ProviderConfig,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = require_api_key(config)
        self.model = config.model or DEFAULT_QWEN_AUDIO_MODEL
        self.base_url = config.endpoint or DEFAULT_COMPATIBLE_BASE_URL
        self.timeout = config.timeout
        self._http_client = http_client

    def build_message(self, audio: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "role": "user",
            "content": [
                {
                    "type": "input_audio",
                    "input_audio": {
                        "data": _encode_audio(audio),
                        "format": chat_audio_format(mime_type),
                    },
                },
                {"type": "text", "text": RECOGNITION_PROMPT},
            ],
        }

    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            http_client=self._http_client,
        )
        accumulator = DeltaAccumulator(chat_delta_texts, on_progress)
        logger.debug("qwen_transcription_request",
                     model=self.model,
                     format=chat_audio_format(mime_type),
                     audio_bytes=len(audio))
        try:
            stream = await client.chat.completions.create(
                model=self.model,
                messages=[self.build_message(audio, mime_type)],
                modalities=["text"],
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                await accumulator.feed(chunk.model_dump())
        except APIStatusError as e:
            raise NetworkError("qwen transcription returned an error status",
                               provider="qwen", status_code=e.status_code) from e
        except APIConnectionError as e:
            raise NetworkError("qwen transcription request failed", provider="qwen") from e
        finally:
            if self._http_client is None:
                await client.close()
        return accumulator.text


class RestTranscriber(Transcriber):
    realtime = False

    def __init__(self,
                 config: ProviderConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = require_api_key(config)
        self.endpoint = require_endpoint(config)
        self.timeout = config.timeout
        self.provider = config.provider.value
        self._transport = transport

    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        async with open_stream(
            "POST",
            self.endpoint,
            provider=self.provider,
            timeout=self.timeout,
            transport=self._transport,
            headers=bearer_headers(self.api_key),
            files={"audio": ("recording.wav", audio, mime_type or "audio/wav")},
        ) as response:
            body = await response.aread()
        try:
            data = json.loads(body)
        except ValueError as e:
            raise NetworkError("rest transcription returned a non-JSON body",
                               provider=self.provider,
                               status_code=response.status_code) from e
        text = data.get("text") if isinstance(data, dict) else None
        return text if isinstance(text, str) else ""
