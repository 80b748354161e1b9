import asyncio
import io
import re
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterable, Deque, Iterator, Optional, Tuple

import numpy as np
import soundfile as sf
import structlog

from ..core.exceptions import AudioDecodeError, ConfigError
from ..core.interfaces import AudioSink

logger = structlog.get_logger(__name__)

RECOGNITION_SAMPLE_RATE = 16000
REALTIME_FRAME_SAMPLES = 3200
BYTES_PER_SAMPLE = 2

RAW_PCM_MIME_TYPES = {"audio/pcm", "audio/l16", "audio/x-pcm"}

_PCM_FORMAT = re.compile(r"^pcm_(\d+)_(\d+)bit$")


@dataclass
class AudioBuffer:
    """Mono float32 samples in [-1.0, 1.0) ready for playback."""
    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        return len(self.samples) / float(self.sample_rate)

    def to_pcm16(self) -> bytes:
        return float_to_pcm16(self.samples)


def parse_pcm_format(audio_format: str) -> Tuple[int, int]:
    """Split a synthesis format such as ``pcm_22050_16bit`` into (rate, bits)."""
    match = _PCM_FORMAT.match(audio_format or "")
    if match is None:
        raise ConfigError(f"Streaming playback needs a raw PCM format, got {audio_format!r}")
    sample_rate, bits = int(match.group(1)), int(match.group(2))
    if bits != 16:
        raise ConfigError(f"Only 16-bit PCM playback is supported, got {bits}-bit")
    return sample_rate, bits


def float_to_pcm16(samples: np.ndarray) -> bytes:
    # Same 1/32768 scale as pcm16_to_float so 16-bit input survives a round trip.
    scaled = np.round(np.asarray(samples, dtype=np.float32) * 32768.0)
    return np.clip(scaled, -32768, 32767).astype("<i2").tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    if source_rate == target_rate or len(samples) == 0:
        return samples
    duration = len(samples) / float(source_rate)
    target_length = max(1, int(round(duration * target_rate)))
    source_times = np.linspace(0.0, duration, num=len(samples), endpoint=False)
    target_times = np.linspace(0.0, duration, num=target_length, endpoint=False)
    return np.interp(target_times, source_times, samples).astype(np.float32)


def decode_to_pcm16(audio: bytes,
                    mime_type: str = "audio/wav",
                    sample_rate: int = RECOGNITION_SAMPLE_RATE) -> bytes:
    """
    Convert an uploaded recording to 16-bit mono PCM at ``sample_rate``.
    Raw PCM uploads are passed through untouched.
    """
    if (mime_type or "").split(";")[0].strip().lower() in RAW_PCM_MIME_TYPES:
        return audio
    try:
        data, source_rate = sf.read(io.BytesIO(audio), dtype="float32", always_2d=True)
    except (RuntimeError, sf.SoundFileError) as e:
        raise AudioDecodeError(f"Cannot decode {mime_type} audio: {e}") from e
    mono = data.mean(axis=1)
    logger.debug("audio_decoded",
                 mime_type=mime_type,
                 source_rate=source_rate,
                 seconds=round(len(mono) / float(source_rate), 2))
    return float_to_pcm16(resample(mono, source_rate, sample_rate))


def pcm16_to_wav(pcm: bytes, sample_rate: int = RECOGNITION_SAMPLE_RATE) -> bytes:
    usable = len(pcm) - (len(pcm) % BYTES_PER_SAMPLE)
    out = io.BytesIO()
    sf.write(out, np.frombuffer(pcm[:usable], dtype="<i2"), sample_rate, format="WAV", subtype="PCM_16")
    return out.getvalue()


def iter_pcm_frames(pcm: bytes, frame_samples: int = REALTIME_FRAME_SAMPLES) -> Iterator[bytes]:
    frame_bytes = frame_samples * BYTES_PER_SAMPLE
    for offset in range(0, len(pcm), frame_bytes):
        yield pcm[offset:offset + frame_bytes]


class PcmChunkDecoder:
    """Decodes streamed 16-bit PCM chunks, carrying a split sample to the next chunk."""

    def __init__(self, sample_rate: int):
        self.sample_rate = sample_rate
        self._remainder = b""

    def decode(self, chunk: bytes) -> Optional[AudioBuffer]:
        data = self._remainder + chunk
        usable = len(data) - (len(data) % BYTES_PER_SAMPLE)
        self._remainder = data[usable:]
        if usable == 0:
            return None
        return AudioBuffer(samples=pcm16_to_float(data[:usable]), sample_rate=self.sample_rate)


class PlaybackQueue:
    """
    Strict FIFO playback: buffers are played one after another and the next one
    starts only when the sink reports the previous one finished.
    """

    def __init__(self, sink: AudioSink):
        self._sink = sink
        self._pending: Deque[AudioBuffer] = deque()
        self._player: Optional[asyncio.Task] = None

    @property
    def is_playing(self) -> bool:
        return self._player is not None and not self._player.done()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(self, buffer: AudioBuffer) -> None:
        self.raise_if_failed()
        self._pending.append(buffer)
        if not self.is_playing:
            self._player = asyncio.create_task(self._play_pending())

    def raise_if_failed(self) -> None:
        """Re-raise the sink's error once the player has died on it."""
        player = self._player
        if player is None or not player.done() or player.cancelled():
            return
        error = player.exception()
        if error is not None:
            self._pending.clear()
            self._player = None
            logger.warning("playback_sink_failed", error=repr(error))
            raise error

    async def _play_pending(self) -> None:
        while self._pending:
            buffer = self._pending.popleft()
            await self._sink.play(buffer)

    async def play_stream(self, chunks: AsyncIterable[bytes], audio_format: str) -> int:
        """Decode each chunk as it arrives, enqueue it, and wait for playback to end."""
        sample_rate, _ = parse_pcm_format(audio_format)
        decoder = PcmChunkDecoder(sample_rate)
        received = 0
        try:
            async for chunk in chunks:
                received += len(chunk)
                buffer = decoder.decode(chunk)
                if buffer is not None:
                    self.enqueue(buffer)
                    # Let the player reach the sink so a failure stops the download.
                    await asyncio.sleep(0)
                    self.raise_if_failed()
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
        await self.drain()
        logger.debug("playback_stream_finished", bytes=received)
        return received

    async def drain(self) -> None:
        if self._player is not None:
            await self._player

    def stop(self) -> None:
        self._pending.clear()
        if self._player is not None and not self._player.done():
            self._player.cancel()
