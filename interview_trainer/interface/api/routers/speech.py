import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from ....core.exceptions import ServiceError
from ....core.interfaces import AudioSink
from ....managers import SpeechManager
from ....processors.audio import AudioBuffer, pcm16_to_wav
from ..dependencies import get_speech_manager
from ..schemas import SynthesisRequestBody, TranscriptionResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["speech"])
ws_router = APIRouter(tags=["speech"])

AUDIO_MEDIA_TYPES = {
    "pcm": "audio/pcm",
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
}


def media_type_for(audio_format: str) -> str:
    return AUDIO_MEDIA_TYPES.get((audio_format or "").split("_")[0], "application/octet-stream")


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe(audio: UploadFile = File(...),
                     speech: SpeechManager = Depends(get_speech_manager)):
    data = await audio.read()
    text = await speech.transcribe(data, audio.content_type or "audio/wav")
    return TranscriptionResponse(text=text)


@router.post("/synthesize")
async def synthesize(body: SynthesisRequestBody,
                     speech: SpeechManager = Depends(get_speech_manager)):
    chunks = speech.synthesize(body.text)
    # Pull the first chunk eagerly so upstream failures still map to an error status.
    try:
        first: Optional[bytes] = await chunks.__anext__()
    except StopAsyncIteration:
        first = None

    async def audio_body():
        if first is None:
            return
        yield first
        async for chunk in chunks:
            yield chunk

    return StreamingResponse(
        audio_body(),
        media_type=media_type_for(speech.synthesis_format),
        headers={"X-Audio-Format": speech.synthesis_format},
    )


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"type": "error", "message": message})
    await websocket.close()


@ws_router.websocket("/transcribe")
async def transcribe_stream(websocket: WebSocket,
                            speech: SpeechManager = Depends(get_speech_manager)):
    """
    Live transcription. The client streams binary PCM16 mono 16 kHz frames and
    sends ``{"type": "stop"}`` when done; progress and the final result come
    back as JSON messages.
    """
    await websocket.accept()

    async def report(text: str) -> None:
        await websocket.send_json({"type": "progress", "text": text})

    session = None
    buffered = bytearray()
    try:
        if speech.supports_realtime:
            session = await speech.open_realtime_session(report)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            if message.get("bytes") is not None:
                if session is not None:
                    await session.send_audio_frame(message["bytes"])
                else:
                    buffered.extend(message["bytes"])
            elif message.get("text"):
                try:
                    command = json.loads(message["text"])
                except ValueError:
                    logger.warning("ws_command_ignored", text=message["text"][:200])
                    continue
                if isinstance(command, dict) and command.get("type") == "stop":
                    break

        if session is not None:
            text = await session.finish()
        else:
            text = await speech.transcribe(pcm16_to_wav(bytes(buffered)), "audio/wav", report)
        await websocket.send_json({"type": "result", "text": text})
        await websocket.close()
    except ServiceError as e:
        await _send_error(websocket, e.user_message)
    except WebSocketDisconnect:
        logger.info("ws_transcribe_disconnected")
    finally:
        if session is not None:
            await session.stop()


class WebSocketAudioSink(AudioSink):
    """Sends one PCM16 buffer and waits for the client to report it finished playing."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.buffers_sent = 0

    async def play(self, buffer: AudioBuffer) -> None:
        await self.websocket.send_bytes(buffer.to_pcm16())
        self.buffers_sent += 1
        while True:
            message = await self.websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ended":
                return


@ws_router.websocket("/speak")
async def speak(websocket: WebSocket,
                speech: SpeechManager = Depends(get_speech_manager)):
    await websocket.accept()
    sink = WebSocketAudioSink(websocket)
    try:
        while True:
            request = await websocket.receive_json()
            text = request.get("text", "") if isinstance(request, dict) else ""
            received = await speech.speak(text, sink)
            await websocket.send_json({"type": "done", "bytes": received})
    except ServiceError as e:
        await _send_error(websocket, e.user_message)
    except WebSocketDisconnect:
        logger.info("ws_speak_disconnected", buffers_sent=sink.buffers_sent)
