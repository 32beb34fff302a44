from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from anki_assistant.api.error_handlers import auth_error_handler, validation_error_handler
from anki_assistant.api.routes.admin import router as admin_router
from anki_assistant.api.routes.auth import router as auth_router
from anki_assistant.api.routes.health import router as health_router
from anki_assistant.api.routes.user import router as user_router
from anki_assistant.core.config import settings
from anki_assistant.core.errors import AuthError
from anki_assistant.core.logging_config import RequestContextMiddleware, configure_logging
from anki_assistant.core.security import require_signing_key


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    require_signing_key()
    yield


app = FastAPI(title="Anki Assistant Backend", lifespan=lifespan)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AuthError, auth_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(admin_router)
