from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from ...config import get_settings
from ...core.exceptions import ConfigError, ParseError, ServiceError
from ...core.logging import setup_logging
from ...managers.interview import EVALUATION_FAILED, QUESTIONS_FAILED
from ...managers.speech import SYNTHESIS_FAILED, TRANSCRIPTION_FAILED
from .routers import health, interview, speech

logger = structlog.get_logger(__name__)

PARSE_FAILED = "解析问题响应失败"

# Endpoint name -> user-safe message for a provider that is not configured.
UNAVAILABLE_MESSAGES = {
    "generate_questions": QUESTIONS_FAILED,
    "evaluate_answer": EVALUATION_FAILED,
    "transcribe": TRANSCRIPTION_FAILED,
    "transcribe_stream": TRANSCRIPTION_FAILED,
    "synthesize": SYNTHESIS_FAILED,
    "speak": SYNTHESIS_FAILED,
}
SERVICE_UNAVAILABLE = "服务暂不可用，请检查API配置"


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY,
                        content={"detail": exc.user_message})


async def parse_error_handler(request: Request, exc: ParseError):
    logger.error("question_parse_failed", error=str(exc))
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY,
                        content={"detail": PARSE_FAILED})


def unavailable_message(conn) -> str:
    endpoint = conn.scope.get("endpoint")
    return UNAVAILABLE_MESSAGES.get(getattr(endpoint, "__name__", ""), SERVICE_UNAVAILABLE)


async def config_error_handler(conn, exc: ConfigError):
    # The reason stays in the log; callers only get the user-safe message.
    logger.error("provider_misconfigured", error=str(exc), path=conn.url.path)
    message = unavailable_message(conn)
    if isinstance(conn, WebSocket):
        await conn.accept()
        await conn.send_json({"type": "error", "message": message})
        await conn.close(code=status.WS_1011_INTERNAL_ERROR)
        return None
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                        content={"detail": message})


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(ParseError, parse_error_handler)
    app.add_exception_handler(ConfigError, config_error_handler)

    app.include_router(health.router, prefix=settings.API_PREFIX)
    app.include_router(interview.router, prefix=settings.API_PREFIX)
    app.include_router(speech.router, prefix=settings.API_PREFIX)
    app.include_router(speech.ws_router, prefix=settings.WEBSOCKET_PATH)

    logger.info("app_created",
                environment=settings.ENVIRONMENT.value,
                api_prefix=settings.API_PREFIX)
    return app
