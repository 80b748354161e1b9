from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog

from ..config import ProviderConfig
from ..core.interfaces import Synthesizer
from .base import bearer_headers, open_stream, require_api_key, require_endpoint

logger = structlog.get_logger(__name__)

DEFAULT_TTS_ENDPOINT = "https://dashscope.aliyuncs.com/api/v1/services/audio/tts/v2"
STREAMING_HEADER = "X-DashScope-Streaming"


@dataclass(frozen=True)
class SynthesisOptions:
    model: str = "cosyvoice-v1"
    voice: str = "longxiaochun"
    format: str = "pcm_22050_16bit"

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "SynthesisOptions":
        return cls(
            model=config.model or cls.model,
            voice=config.voice or cls.voice,
            format=config.format or cls.format,
        )


def _is_blank(text: Optional[str]) -> bool:
    if not text or not text.strip():
        logger.warning("synthesis_skipped_blank_text")
        return True
    return False


class CosyVoiceSynthesizer(Synthesizer):
    """
    DashScope CosyVoice synthesis.

    With streaming enabled the raw PCM body is yielded chunk by chunk as it
    arrives; otherwise the whole body is read and yielded once.
    """

    def __init__(self,
                 config: ProviderConfig,
                 streaming: bool = True,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = require_api_key(config)
        self.options = SynthesisOptions.from_config(config)
        self.endpoint = config.endpoint or DEFAULT_TTS_ENDPOINT
        self.streaming = streaming
        self.timeout = config.timeout
        self._transport = transport

    @property
    def audio_format(self) -> str:
        return self.options.format

    def build_request(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.options.model,
            "voice": self.options.voice,
            "format": self.options.format,
            "text": text,
        }

    async def synthesize(self, text: str) -> AsyncIterator[bytes]:
        if _is_blank(text):
            return
        extra = {STREAMING_HEADER: "enable"} if self.streaming else {}
        received = 0
        async with open_stream(
            "POST",
            self.endpoint,
            provider="cosyvoice",
            timeout=self.timeout,
            transport=self._transport,
            headers=bearer_headers(self.api_key, **extra),
            json=self.build_request(text),
        ) as response:
            if self.streaming:
                async for chunk in response.aiter_bytes():
                    if chunk:
                        received += len(chunk)
                        yield chunk
            else:
                body = await response.aread()
                received = len(body)
                yield body
        logger.info("synthesis_completed",
                    model=self.options.model,
                    voice=self.options.voice,
                    streaming=self.streaming,
                    bytes=received)


class RestSynthesizer(Synthesizer):
    """Generic endpoint taking ``{text, voice, rate, pitch}`` and returning one audio body."""

    def __init__(self,
                 config: ProviderConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = require_api_key(config)
        self.endpoint = require_endpoint(config)
        self.voice = config.voice
        self.rate = config.rate
        self.pitch = config.pitch
        self.audio_format = config.format or ""
        self.timeout = config.timeout
        self._transport = transport

    async def synthesize(self, text: str) -> AsyncIterator[bytes]:
        if _is_blank(text):
            return
        async with open_stream(
            "POST",
            self.endpoint,
            provider="rest",
            timeout=self.timeout,
            transport=self._transport,
            headers=bearer_headers(self.api_key),
            json={"text": text, "voice": self.voice, "rate": self.rate, "pitch": self.pitch},
        ) as response:
            body = await response.aread()
        logger.info("synthesis_completed", provider="rest", bytes=len(body))
        yield body
