from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog

from ..config import ProviderConfig
from ..core.exceptions import ConfigError, NetworkError

logger = structlog.get_logger(__name__)


def require_api_key(config: ProviderConfig) -> str:
    if not config.api_key:
        raise ConfigError(f"No API key configured for provider '{config.provider.value}'")
    return config.api_key


def require_endpoint(config: ProviderConfig) -> str:
    if not config.endpoint:
        raise ConfigError(f"No endpoint configured for provider '{config.provider.value}'")
    return config.endpoint


def bearer_headers(api_key: str, **extra: str) -> Dict[str, str]:
    headers = {"Authorization": f"Bearer {api_key}"}
    headers.update(extra)
    return headers


@asynccontextmanager
async def open_stream(method: str,
                      url: str,
                      *,
                      provider: str,
                      timeout: Optional[float] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None,
                      **request: Any) -> AsyncIterator[httpx.Response]:
    """
    Issue one request and hand back the unread response.

    Non-2xx statuses and transport failures (including ones raised while the
    caller reads the body) surface as NetworkError.
    """
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport) as client:
            async with client.stream(method, url, **request) as response:
                if response.is_error:
                    body = await response.aread()
                    logger.error("upstream_error_status",
                                 provider=provider,
                                 status_code=response.status_code,
                                 body=body[:500].decode("utf-8", errors="replace"))
                    raise NetworkError(f"{provider} request returned an error status",
                                       provider=provider,
                                       status_code=response.status_code)
                yield response
    except httpx.HTTPError as e:
        logger.error("upstream_transport_error", provider=provider, error=repr(e))
        raise NetworkError(f"{provider} request failed: {e.__class__.__name__}",
                           provider=provider) from e
