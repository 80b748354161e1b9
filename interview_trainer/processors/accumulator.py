"""
Folds streamed frames into one text result.

Two frame shapes are understood: OpenAI-style chat deltas
(``choices[0].delta.content``) and DashScope multimodal messages
(``output.choices[0].message.content[*].text``).
"""
import inspect
from typing import Any, AsyncIterable, Callable, List, Optional

import structlog

from ..core.interfaces import ProgressCallback

logger = structlog.get_logger(__name__)


def chat_delta_texts(frame: Any) -> List[str]:
    content = frame["choices"][0]["delta"].get("content")
    return [content] if isinstance(content, str) and content else []


def multimodal_texts(frame: Any) -> List[str]:
    items = frame["output"]["choices"][0]["message"]["content"]
    if not isinstance(items, list):
        return []
    return [item["text"] for item in items
            if isinstance(item, dict) and isinstance(item.get("text"), str) and item["text"]]


class DeltaAccumulator:
    """Appends the texts found in each frame, strictly in arrival order."""

    def __init__(self,
                 extract: Callable[[Any], List[str]],
                 on_progress: Optional[ProgressCallback] = None):
        self._extract = extract
        self._on_progress = on_progress
        self._parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def append(self, text: str) -> None:
        self._parts.append(text)
        if self._on_progress is not None:
            result = self._on_progress(self.text)
            if inspect.isawaitable(result):
                await result

    async def feed(self, frame: Any) -> None:
        try:
            texts = self._extract(frame)
        except (KeyError, IndexError, TypeError, AttributeError):
            # Usage-only or otherwise unrelated frames carry no text.
            logger.debug("accumulator_frame_ignored")
            return
        for text in texts:
            await self.append(text)

    async def consume(self, frames: AsyncIterable[Any]) -> str:
        async for frame in frames:
            await self.feed(frame)
        return self.text


async def accumulate_chat_deltas(frames: AsyncIterable[Any]) -> str:
    return await DeltaAccumulator(chat_delta_texts).consume(frames)


async def accumulate_multimodal_content(frames: AsyncIterable[Any],
                                        on_progress: Optional[ProgressCallback] = None) -> str:
    return await DeltaAccumulator(multimodal_texts, on_progress).consume(frames)
