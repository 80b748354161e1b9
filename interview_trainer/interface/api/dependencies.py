from fastapi import Depends

from ...config import Settings, get_settings
from ...core.interfaces import InterviewManager
from ...managers import ChatInterviewManager, SpeechManager
from ...providers import create_chat_client, create_synthesizer, create_transcriber


def get_interview_manager(settings: Settings = Depends(get_settings)) -> InterviewManager:
    return ChatInterviewManager(create_chat_client(settings.chat_config()))


def get_speech_manager(settings: Settings = Depends(get_settings)) -> SpeechManager:
    return SpeechManager(
        transcriber=create_transcriber(settings.speech_to_text_config()),
        synthesizer=create_synthesizer(settings.text_to_speech_config(),
                                       streaming=settings.TTS_STREAMING),
        synthesis_format=settings.TTS_FORMAT,
    )
