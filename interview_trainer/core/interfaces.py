from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Union

from ..application.interview_session import (
    EvaluationRequest,
    EvaluationResult,
    InterviewQuestion,
    QuestionRequest,
)

# Receives the text accumulated so far; may be a plain function or a coroutine function.
ProgressCallback = Callable[[str], Union[None, Awaitable[None]]]


class ChatCompleter(ABC):
    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send a single user prompt and return the fully accumulated reply."""
        pass


class Transcriber(ABC):
    # True when the provider can also run a live duplex recognition session.
    realtime = False

    @abstractmethod
    async def transcribe(self,
                         audio: bytes,
                         mime_type: str = "audio/wav",
                         on_progress: Optional[ProgressCallback] = None) -> str:
        """Turn recorded audio into a single transcript string."""
        pass


class Synthesizer(ABC):
    @abstractmethod
    def synthesize(self, text: str) -> AsyncIterator[bytes]:
        """Yield audio bytes for the given text, in arrival order."""
        pass


class AudioSink(ABC):
    @abstractmethod
    async def play(self, buffer: Any) -> None:
        """Play one decoded buffer and return once playback has finished."""
        pass


class InterviewManager(ABC):
    @abstractmethod
    async def generate_questions(self, request: QuestionRequest) -> List[InterviewQuestion]:
        """Generate the question list for one interview session."""
        pass

    @abstractmethod
    async def evaluate_answer(self, request: EvaluationRequest) -> EvaluationResult:
        """Score the candidate's answer to one question."""
        pass
