from .interview import ChatInterviewManager
from .speech import SpeechManager

__all__ = ["ChatInterviewManager", "SpeechManager"]
