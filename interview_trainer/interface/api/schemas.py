from typing import Literal, Optional

from pydantic import BaseModel, Field

from ...application.interview_session import (
    EvaluationRequest,
    EvaluationResult,
    InterviewQuestion,
    QuestionRequest,
)


class QuestionRequestBody(BaseModel):
    interview_type: str = Field(..., min_length=1, examples=["teacher-qualification"])
    subject: str = Field(..., min_length=1, examples=["math"])
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    include_hot_topics: bool = False

    def to_domain(self) -> QuestionRequest:
        return QuestionRequest(
            interview_type=self.interview_type,
            subject=self.subject,
            difficulty=self.difficulty,
            include_hot_topics=self.include_hot_topics,
        )


class QuestionResponse(BaseModel):
    question: str
    reference: str
    type: int = Field(..., ge=0, le=7)

    @classmethod
    def from_domain(cls, question: InterviewQuestion) -> "QuestionResponse":
        return cls(question=question.question, reference=question.reference, type=question.type)


class EvaluationRequestBody(BaseModel):
    question: str = Field(..., min_length=1)
    user_answer: str = Field(..., min_length=1)
    interview_type: str = Field(..., min_length=1)
    subject: Optional[str] = None

    def to_domain(self) -> EvaluationRequest:
        return EvaluationRequest(
            question=self.question,
            user_answer=self.user_answer,
            interview_type=self.interview_type,
            subject=self.subject,
        )


class EvaluationResponse(BaseModel):
    score: int
    evaluation: str

    @classmethod
    def from_domain(cls, result: EvaluationResult) -> "EvaluationResponse":
        return cls(score=result.score, evaluation=result.evaluation)


class TranscriptionResponse(BaseModel):
    text: str


class SynthesisRequestBody(BaseModel):
    text: str

