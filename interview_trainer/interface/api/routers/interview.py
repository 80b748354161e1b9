from typing import List

from fastapi import APIRouter, Depends

from ....core.interfaces import InterviewManager
from ..dependencies import get_interview_manager
from ..schemas import (
    EvaluationRequestBody,
    EvaluationResponse,
    QuestionRequestBody,
    QuestionResponse,
)

router = APIRouter(tags=["interview"])


@router.post("/questions", response_model=List[QuestionResponse])
async def generate_questions(body: QuestionRequestBody,
                             manager: InterviewManager = Depends(get_interview_manager)):
    """Generate a fresh set of structured-interview questions."""
    questions = await manager.generate_questions(body.to_domain())
    return [QuestionResponse.from_domain(question) for question in questions]


@router.post("/evaluate", response_model=EvaluationResponse)
async def evaluate_answer(body: EvaluationRequestBody,
                          manager: InterviewManager = Depends(get_interview_manager)):
    result = await manager.evaluate_answer(body.to_domain())
    return EvaluationResponse.from_domain(result)
