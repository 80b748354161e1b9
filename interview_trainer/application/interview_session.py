from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class QuestionType(IntEnum):
    UNCLASSIFIED = 0
    SELF_AWARENESS = 1
    INTERPERSONAL = 2
    ORGANIZATIONAL = 3
    CRISIS_RESPONSE = 4
    ANALYTICAL = 5
    PEDAGOGICAL = 6
    POLICY = 7


@dataclass(frozen=True)
class InterviewQuestion:
    question: str = ""
    reference: str = ""
    type: int = QuestionType.UNCLASSIFIED.value


@dataclass(frozen=True)
class EvaluationResult:
    score: int
    evaluation: str


@dataclass
class QuestionRequest:
    interview_type: str
    subject: str
    difficulty: str = "medium"
    include_hot_topics: bool = False


@dataclass
class EvaluationRequest:
    question: str
    user_answer: str
    interview_type: str
    subject: Optional[str] = None

