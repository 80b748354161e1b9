"""Streaming decode, accumulation, extraction and audio helpers."""

from .stream import iter_sse_frames
from .accumulator import (
    DeltaAccumulator, accumulate_chat_deltas, accumulate_multimodal_content
)
from .extraction import (
    ResultKind, extract, extract_questions, extract_evaluation, DEFAULT_EVALUATION
)

__all__ = [
    "iter_sse_frames",
    "DeltaAccumulator", "accumulate_chat_deltas", "accumulate_multimodal_content",
    "ResultKind", "extract", "extract_questions", "extract_evaluation", "DEFAULT_EVALUATION",
]
