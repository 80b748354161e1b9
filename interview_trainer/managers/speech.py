from typing import AsyncIterator, Optional

import structlog

from ..core.exceptions import InterviewTrainerError, ServiceError
from ..core.interfaces import AudioSink, ProgressCallback, Synthesizer, Transcriber
from ..processors.audio import PlaybackQueue

logger = structlog.get_logger(__name__)

TRANSCRIPTION_FAILED = "语音识别失败，请检查API配置或网络连接"
SYNTHESIS_FAILED = "语音合成失败，请检查API配置或网络连接"


class SpeechManager:
    """
    Speech use cases over the configured transcriber and synthesizer.

    Every adapter failure leaves here as a ServiceError carrying the
    user-facing message, chained to the original cause.
    """

    def __init__(self,
                 transcriber: Transcriber,
                 synthesizer: Synthesizer,
                 synthesis_format: Optional[str] = None):
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.synthesis_format = synthesis_format or getattr(synthesizer, "audio_format", "")

    @property
    def supports_realtime(self) -> bool:
        return bool(getattr(self.transcriber, "realtime", False))

    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        logger.info("transcription_started", mime_type=mime_type, audio_bytes=len(audio))
        try:
            text = await self.transcriber.transcribe(audio, mime_type, on_progress)
        except InterviewTrainerError as e:
            logger.error("transcription_failed", error=str(e), audio_bytes=len(audio))
            raise ServiceError(TRANSCRIPTION_FAILED) from e
        logger.info("transcription_finished", text_chars=len(text))
        return text

    async def open_realtime_session(self, on_progress: Optional[ProgressCallback] = None):
        """Start a live recognition session; only valid when ``supports_realtime``."""
        if not self.supports_realtime:
            raise ServiceError(TRANSCRIPTION_FAILED)
        session = self.transcriber.open_session(on_progress)
        try:
            return await session.start()
        except InterviewTrainerError as e:
            logger.error("realtime_session_failed", error=str(e))
            raise ServiceError(TRANSCRIPTION_FAILED) from e

    async def synthesize(self, text: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.synthesizer.synthesize(text):
                yield chunk
        except InterviewTrainerError as e:
            logger.error("synthesis_failed", error=str(e), text_chars=len(text or ""))
            raise ServiceError(SYNTHESIS_FAILED) from e

    async def speak(self, text: str, sink: AudioSink) -> int:
        """Synthesize ``text`` and play it through ``sink`` buffer by buffer."""
        queue = PlaybackQueue(sink)
        try:
            return await queue.play_stream(self.synthesize(text), self.synthesis_format)
        except ServiceError:
            raise
        except InterviewTrainerError as e:
            logger.error("playback_failed", error=str(e))
            raise ServiceError(SYNTHESIS_FAILED) from e
        finally:
            queue.stop()
