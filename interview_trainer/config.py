from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from enum import Enum
from typing import Optional


class EnvironmentType(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class Provider(str, Enum):
    QWEN = "qwen"
    DASHSCOPE = "dashscope"
    ALIYUN = "aliyun"
    PARAFORMER = "paraformer"
    COSYVOICE = "cosyvoice"
    REST = "rest"


class ProviderConfig(BaseModel):
    """Read-only per-call configuration handed to a provider adapter."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    api_key: str = ""
    model: str = ""
    endpoint: Optional[str] = None
    voice: Optional[str] = None
    format: Optional[str] = None
    rate: Optional[float] = None
    pitch: Optional[float] = None
    timeout: Optional[float] = None


class Settings(BaseSettings):
    # Basic Settings
    APP_NAME: str = "Mock Interview Trainer"
    ENVIRONMENT: EnvironmentType = EnvironmentType.DEVELOPMENT
    DEBUG: bool = True
    API_PREFIX: str = "/api"
    WEBSOCKET_PATH: str = "/ws"

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "DEBUG"

    # Upstream calls wait indefinitely unless a timeout is set
    REQUEST_TIMEOUT: Optional[float] = None

    # Shared key used when a capability has no key of its own
    DASHSCOPE_API_KEY: str = ""

    # Chat completion
    CHAT_PROVIDER: Provider = Provider.QWEN
    CHAT_API_KEY: str = ""
    CHAT_MODEL: str = "qwen-omni-turbo"
    CHAT_ENDPOINT: Optional[str] = None

    # Speech-to-text
    STT_PROVIDER: Provider = Provider.PARAFORMER
    STT_API_KEY: str = ""
    STT_MODEL: str = "paraformer-realtime-v2"
    STT_ENDPOINT: Optional[str] = None

    # Text-to-speech
    TTS_PROVIDER: Provider = Provider.COSYVOICE
    TTS_API_KEY: str = ""
    TTS_MODEL: str = "cosyvoice-v1"
    TTS_VOICE: str = "longxiaochun"
    TTS_FORMAT: str = "pcm_22050_16bit"
    TTS_ENDPOINT: Optional[str] = None
    TTS_RATE: float = 1.0
    TTS_PITCH: float = 1.0
    TTS_STREAMING: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra='ignore'
    )

    def _key(self, own_key: str) -> str:
        return own_key or self.DASHSCOPE_API_KEY

    def chat_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self.CHAT_PROVIDER,
            api_key=self._key(self.CHAT_API_KEY),
            model=self.CHAT_MODEL,
            endpoint=self.CHAT_ENDPOINT,
            timeout=self.REQUEST_TIMEOUT,
        )

    def speech_to_text_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self.STT_PROVIDER,
            api_key=self._key(self.STT_API_KEY),
            model=self.STT_MODEL,
            endpoint=self.STT_ENDPOINT,
            timeout=self.REQUEST_TIMEOUT,
        )

    def text_to_speech_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self.TTS_PROVIDER,
            api_key=self._key(self.TTS_API_KEY),
            model=self.TTS_MODEL,
            voice=self.TTS_VOICE,
            format=self.TTS_FORMAT,
            endpoint=self.TTS_ENDPOINT,
            rate=self.TTS_RATE,
            pitch=self.TTS_PITCH,
            timeout=self.REQUEST_TIMEOUT,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
