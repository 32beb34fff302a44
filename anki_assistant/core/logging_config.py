import contextvars
import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from anki_assistant.core.config import settings
from anki_assistant.core.errors import AuthError
from anki_assistant.core.security import decode_access_token

APP_LOGGER_NAME = "anki_assistant"

user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    if isinstance(level, int):
        return level
    return logging.INFO


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject per-request context variables
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        return True


def _build_console_handler(level: int) -> logging.Handler:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(user_id)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _reset_handlers(target_logger: logging.Logger, handlers: list[logging.Handler], level: int) -> None:
    for h in list(target_logger.handlers):
        target_logger.removeHandler(h)
    for h in handlers:
        target_logger.addHandler(h)
    target_logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Attach the console handler to the app and Uvicorn loggers.

    Module loggers under ``anki_assistant.*`` propagate to the app logger.
    """
    level = map_log_level(settings.LOG_LEVEL)
    handler = _build_console_handler(level)

    app_logger = logging.getLogger(app_logger_name or APP_LOGGER_NAME)
    app_logger.propagate = False
    _reset_handlers(app_logger, [handler], level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        lgr = logging.getLogger(name)
        lgr.propagate = False
        _reset_handlers(lgr, [handler], level)

    return app_logger


def _user_id_from_request(request: Request) -> str:
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return "-"
    token = auth_header.split(" ", 1)[1]
    try:
        payload = decode_access_token(token)
    except AuthError:
        return "-"
    return str(payload.get("sub") or "-")


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        context_token_user = user_id_var.set(_user_id_from_request(request))
        context_token_api = api_var.set(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        finally:
            user_id_var.reset(context_token_user)
            api_var.reset(context_token_api)
