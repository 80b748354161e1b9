from typing import List

import structlog

from ..application.interview_session import (
    EvaluationRequest,
    EvaluationResult,
    InterviewQuestion,
    QuestionRequest,
)
from ..core.exceptions import InterviewTrainerError, ServiceError
from ..core.interfaces import ChatCompleter, InterviewManager
from ..processors.extraction import extract_evaluation, extract_questions
from .prompts import build_evaluation_prompt, build_question_prompt

logger = structlog.get_logger(__name__)

QUESTIONS_FAILED = "生成面试问题失败，请检查API配置或网络连接"
EVALUATION_FAILED = "评价回答失败，请检查API配置或网络连接"


class ChatInterviewManager(InterviewManager):
    """Question generation and answer evaluation on top of one chat provider."""

    def __init__(self, chat: ChatCompleter):
        self.chat = chat

    async def generate_questions(self, request: QuestionRequest) -> List[InterviewQuestion]:
        prompt = build_question_prompt(
            request.interview_type,
            request.subject,
            request.difficulty,
            request.include_hot_topics,
        )
        try:
            reply = await self.chat.complete(prompt)
        except InterviewTrainerError as e:
            logger.error("question_generation_failed", error=str(e))
            raise ServiceError(QUESTIONS_FAILED) from e

        # ParseError propagates: an empty question list is never a success.
        questions = extract_questions(reply)
        logger.info("questions_generated",
                    count=len(questions),
                    interview_type=request.interview_type,
                    subject=request.subject)
        return questions

    async def evaluate_answer(self, request: EvaluationRequest) -> EvaluationResult:
        prompt = build_evaluation_prompt(
            request.question,
            request.user_answer,
            request.interview_type,
        )
        try:
            reply = await self.chat.complete(prompt)
        except InterviewTrainerError as e:
            logger.error("answer_evaluation_failed", error=str(e))
            raise ServiceError(EVALUATION_FAILED) from e

        result = extract_evaluation(reply)
        logger.info("answer_evaluated", score=result.score)
        return result
