"""
Recovers structured results from model output that should be JSON but often
is not: prose around the payload, escaped newlines, or plain numbered text.

Every kind runs the same cascade and stops at the first stage that produces
something usable:

1. parse the whole text as JSON
2. locate the first candidate with a bracket-depth scan and parse it
3. unescape literal ``\\n``/``\\r`` in that candidate and parse leniently
4. fall back to a heuristic text parse

Questions fail loudly (``ParseError``) when nothing is recovered; evaluations
never fail and degrade to ``DEFAULT_EVALUATION``.
"""
import json
import math
import re
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

import structlog

from ..application.interview_session import (
    EvaluationResult,
    InterviewQuestion,
    QuestionType,
)
from ..core.exceptions import ParseError

logger = structlog.get_logger(__name__)


class ResultKind(str, Enum):
    QUESTIONS = "questions"
    EVALUATION = "evaluation"


DEFAULT_EVALUATION = EvaluationResult(
    score=70,
    evaluation="系统无法解析评价结果，请重试或联系管理员。",
)
PROCESSING_ERROR_EVALUATION = EvaluationResult(
    score=70,
    evaluation="系统处理评价时遇到错误，请重试或联系管理员。",
)

# First matching category wins, so the order matters.
QUESTION_TYPE_KEYWORDS: Tuple[Tuple[QuestionType, Tuple[str, ...]], ...] = (
    (QuestionType.SELF_AWARENESS, ("自我认知", "职业规划", "为什么选择")),
    (QuestionType.INTERPERSONAL, ("沟通", "家长", "同事")),
    (QuestionType.ORGANIZATIONAL, ("组织", "活动", "管理")),
    (QuestionType.CRISIS_RESPONSE, ("突发", "应急", "处理")),
    (QuestionType.ANALYTICAL, ("分析", "理解", "看法")),
    (QuestionType.PEDAGOGICAL, ("教学", "课堂", "学生")),
    (QuestionType.POLICY, ("政策", "时事", "热点")),
)

_VALID_TYPES = frozenset(member.value for member in QuestionType)
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_ARRAY_OF_OBJECTS_START = re.compile(r"\[\s*\{")
_ARRAY_OF_OBJECTS_END = re.compile(r"\}\s*\]")
_LOOSE_EVALUATION_OBJECT = re.compile(r"\{[\s\S]*?score[\s\S]*?evaluation[\s\S]*?\}")

_NUMBERED_MARKER = re.compile(r"\d+\.\s*")
_REFERENCE_SEPARATOR = re.compile(r"参考答案[：:]", re.IGNORECASE)
_QUESTION_LINE = re.compile(r"问题[\d\s]*[:：]\s*([^\n]+)")
_ANSWER_LINE = re.compile(r"(?:参考)?答案[\d\s]*[:：]\s*([^\n]+)")

_SCORE_FIELD = re.compile(r'"?score"?\s*[=:]\s*([0-9]+)', re.IGNORECASE)
_EVALUATION_FIELD = re.compile(r'"?evaluation"?\s*[=:]\s*"([^"]+)"', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def coerce_int(value: Any) -> int:
    """Best-effort integer: leading digits of a string, truncated floats, else 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else 0
    return 0


def _coerce_text(value: Any) -> str:
    if value is None or value == "":
        return ""
    return value if isinstance(value, str) else str(value)


def classify_question(text: str) -> int:
    for question_type, keywords in QUESTION_TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return question_type.value
    return QuestionType.UNCLASSIFIED.value


def normalize_question(item: Any) -> InterviewQuestion:
    if isinstance(item, str):
        return InterviewQuestion(question=item)
    if not isinstance(item, dict):
        item = {}
    question_type = coerce_int(item.get("type"))
    if question_type not in _VALID_TYPES:
        question_type = QuestionType.UNCLASSIFIED.value
    return InterviewQuestion(
        question=_coerce_text(item.get("question")),
        reference=_coerce_text(item.get("reference")),
        type=question_type,
    )


def normalize_evaluation(data: dict) -> EvaluationResult:
    score = coerce_int(data["score"]) if "score" in data else 0
    return EvaluationResult(score=score, evaluation=_coerce_text(data.get("evaluation")))


# ---------------------------------------------------------------------------
# Bracket scanning
# ---------------------------------------------------------------------------

def find_matching_bracket(text: str, start: int) -> Optional[int]:
    """
    Index of the bracket closing the one at ``start``, ignoring brackets inside
    JSON strings. None when the text ends first or the nesting is mismatched.
    """
    closing = "]" if text[start] == "[" else "}"
    stack: List[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            stack.append("]")
        elif char == "{":
            stack.append("}")
        elif char in "]}":
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index if char == closing else None
    return None


def find_question_array(text: str) -> Optional[str]:
    start_match = _ARRAY_OF_OBJECTS_START.search(text)
    if start_match is None:
        return None
    start = start_match.start()
    end = find_matching_bracket(text, start)
    if end is not None:
        return text[start:end + 1]
    # Unbalanced: take everything up to the last "}]".
    ends = list(_ARRAY_OF_OBJECTS_END.finditer(text, start))
    if not ends:
        return None
    return text[start:ends[-1].end()]


def _object_starts(text: str) -> Iterator[int]:
    index = text.find("{")
    while index != -1:
        yield index
        index = text.find("{", index + 1)


def find_evaluation_object(text: str) -> Optional[str]:
    for start in _object_starts(text):
        end = find_matching_bracket(text, start)
        if end is None:
            continue
        candidate = text[start:end + 1]
        if "score" in candidate and "evaluation" in candidate:
            return candidate
    loose = _LOOSE_EVALUATION_OBJECT.search(text)
    return loose.group(0) if loose else None


# ---------------------------------------------------------------------------
# Parsing stages
# ---------------------------------------------------------------------------

def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _loads_cleaned(text: str) -> Optional[Any]:
    cleaned = text.replace("\\n", "\n").replace("\\r", "")
    try:
        return json.loads(cleaned, strict=False)
    except ValueError:
        return None


def _as_question_list(data: Any) -> Optional[List[InterviewQuestion]]:
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list) or not data:
        return None
    return [normalize_question(item) for item in data]


def _as_evaluation(data: Any) -> Optional[EvaluationResult]:
    if not isinstance(data, dict):
        return None
    if "score" not in data and "evaluation" not in data:
        return None
    return normalize_evaluation(data)


def parse_questions_manually(text: str) -> List[InterviewQuestion]:
    """Heuristic parse of numbered question/reference text."""
    questions: List[InterviewQuestion] = []
    for block in _NUMBERED_MARKER.split(text):
        if not block.strip():
            continue
        parts = _REFERENCE_SEPARATOR.split(block, maxsplit=1)
        if len(parts) < 2:
            continue
        question_text = parts[0].strip()
        questions.append(InterviewQuestion(
            question=question_text,
            reference=parts[1].strip(),
            type=classify_question(question_text),
        ))
    if questions:
        return questions

    question_lines = _QUESTION_LINE.findall(text)
    answer_lines = _ANSWER_LINE.findall(text)
    if question_lines and len(question_lines) == len(answer_lines):
        for question_text, reference_text in zip(question_lines, answer_lines):
            questions.append(InterviewQuestion(
                question=question_text.strip(),
                reference=reference_text.strip(),
            ))
    return questions


def parse_evaluation_manually(text: str) -> Optional[EvaluationResult]:
    score_match = _SCORE_FIELD.search(text)
    evaluation_match = _EVALUATION_FIELD.search(text)
    if score_match is None or evaluation_match is None:
        return None
    return EvaluationResult(score=int(score_match.group(1)),
                            evaluation=evaluation_match.group(1))


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def extract_questions(text: Optional[str]) -> List[InterviewQuestion]:
    """Recover the question list; raises ParseError when nothing is found."""
    text = text or ""

    questions = _as_question_list(_loads(text.strip()))
    if questions:
        logger.debug("questions_extracted", stage="direct")
        return questions

    candidate = find_question_array(text)
    if candidate is not None:
        questions = _as_question_list(_loads(candidate))
        if questions:
            logger.debug("questions_extracted", stage="bracket_scan")
            return questions
        questions = _as_question_list(_loads_cleaned(candidate))
        if questions:
            logger.debug("questions_extracted", stage="cleaned")
            return questions

    logger.info("questions_manual_parse", length=len(text))
    questions = parse_questions_manually(text)
    if questions:
        logger.debug("questions_extracted", stage="manual", count=len(questions))
        return questions

    logger.error("questions_extraction_failed", length=len(text))
    raise ParseError("no valid questions recovered")


def _extract_evaluation(text: str) -> Optional[EvaluationResult]:
    result = _as_evaluation(_loads(text.strip()))
    if result is not None:
        logger.debug("evaluation_extracted", stage="direct")
        return result

    candidate = find_evaluation_object(text)
    if candidate is not None:
        result = _as_evaluation(_loads(candidate))
        if result is not None:
            logger.debug("evaluation_extracted", stage="bracket_scan")
            return result
        result = _as_evaluation(_loads_cleaned(candidate))
        if result is not None:
            logger.debug("evaluation_extracted", stage="cleaned")
            return result

    result = parse_evaluation_manually(text)
    if result is not None:
        logger.debug("evaluation_extracted", stage="manual")
    return result


def extract_evaluation(text: Optional[str]) -> EvaluationResult:
    """Recover the evaluation; never raises, falls back to DEFAULT_EVALUATION."""
    try:
        result = _extract_evaluation(text or "")
    except Exception:
        logger.exception("evaluation_extraction_error")
        return PROCESSING_ERROR_EVALUATION
    if result is None:
        logger.warning("evaluation_default_used", length=len(text or ""))
        return DEFAULT_EVALUATION
    return result


def extract(text: Optional[str], kind: ResultKind):
    if ResultKind(kind) is ResultKind.QUESTIONS:
        return extract_questions(text)
    return extract_evaluation(text)
