from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import structlog

from ..config import ProviderConfig
from ..core.interfaces import ChatCompleter
from ..processors.accumulator import accumulate_chat_deltas
from ..processors.stream import iter_sse_frames
from .base import bearer_headers, open_stream, require_api_key

logger = structlog.get_logger(__name__)

DEFAULT_CHAT_ENDPOINT = "https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions"
DEFAULT_CHAT_MODEL = "qwen-omni-turbo"

MessageContent = Union[str, List[Dict[str, Any]]]


def build_chat_request(model: str, content: MessageContent) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [{"role": "user", "content": content}],
        "modalities": ["text"],
        "stream": True,
        "stream_options": {"include_usage": True},
    }


class QwenChatClient(ChatCompleter):
    """Streaming chat completions against the DashScope compatible-mode API."""

    def __init__(self,
                 config: ProviderConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = require_api_key(config)
        self.model = config.model or DEFAULT_CHAT_MODEL
        self.endpoint = config.endpoint or DEFAULT_CHAT_ENDPOINT
        self.timeout = config.timeout
        self.provider = config.provider.value
        self._transport = transport

    async def stream_frames(self, content: MessageContent) -> AsyncIterator[Any]:
        async with open_stream(
            "POST",
            self.endpoint,
            provider=self.provider,
            timeout=self.timeout,
            transport=self._transport,
            headers=bearer_headers(self.api_key),
            json=build_chat_request(self.model, content),
        ) as response:
            async for frame in iter_sse_frames(response.aiter_bytes()):
                yield frame

    async def complete(self, prompt: str) -> str:
        logger.debug("chat_request", model=self.model, prompt_chars=len(prompt))
        text = await accumulate_chat_deltas(self.stream_frames(prompt))
        logger.info("chat_completed", model=self.model, reply_chars=len(text))
        return text
