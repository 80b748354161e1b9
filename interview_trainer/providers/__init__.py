"""Vendor adapters behind the chat, speech-to-text and text-to-speech ports."""

from typing import Dict, Type

from ..config import Provider, ProviderConfig
from ..core.exceptions import ConfigError
from ..core.interfaces import ChatCompleter, Synthesizer, Transcriber
from .chat import QwenChatClient
from .speech_to_text import (
    DashScopeMultimodalTranscriber,
    ParaformerRealtimeTranscriber,
    QwenChatTranscriber,
    RealtimeRecognition,
    RestTranscriber,
)
from .text_to_speech import CosyVoiceSynthesizer, RestSynthesizer

CHAT_PROVIDERS: Dict[Provider, Type[ChatCompleter]] = {
    Provider.QWEN: QwenChatClient,
}

TRANSCRIBERS: Dict[Provider, Type[Transcriber]] = {
    Provider.DASHSCOPE: DashScopeMultimodalTranscriber,
    Provider.ALIYUN: DashScopeMultimodalTranscriber,
    Provider.PARAFORMER: ParaformerRealtimeTranscriber,
    Provider.QWEN: QwenChatTranscriber,
    Provider.REST: RestTranscriber,
}

SYNTHESIZERS: Dict[Provider, Type[Synthesizer]] = {
    Provider.COSYVOICE: CosyVoiceSynthesizer,
    Provider.REST: RestSynthesizer,
}


def _lookup(table: Dict[Provider, type], config: ProviderConfig, capability: str) -> type:
    try:
        return table[config.provider]
    except KeyError:
        raise ConfigError(
            f"Provider '{config.provider.value}' does not support {capability}"
        ) from None


def create_chat_client(config: ProviderConfig) -> ChatCompleter:
    return _lookup(CHAT_PROVIDERS, config, "chat")(config)


def create_transcriber(config: ProviderConfig) -> Transcriber:
    return _lookup(TRANSCRIBERS, config, "speech-to-text")(config)


def create_synthesizer(config: ProviderConfig, streaming: bool = True) -> Synthesizer:
    synthesizer_class = _lookup(SYNTHESIZERS, config, "text-to-speech")
    if synthesizer_class is CosyVoiceSynthesizer:
        return CosyVoiceSynthesizer(config, streaming=streaming)
    return synthesizer_class(config)


__all__ = [
    "QwenChatClient",
    "DashScopeMultimodalTranscriber", "ParaformerRealtimeTranscriber",
    "QwenChatTranscriber", "RestTranscriber", "RealtimeRecognition",
    "CosyVoiceSynthesizer", "RestSynthesizer",
    "create_chat_client", "create_transcriber", "create_synthesizer",
]
