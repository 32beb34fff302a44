from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from anki_assistant.api.dependencies import IdentityDep, SessionDep
from anki_assistant.api.error_handlers import auth_error_response
from anki_assistant.core.config import settings
from anki_assistant.core.errors import AuthError, InvalidCredentials, StorageFailure, UserInactive
from anki_assistant.core.security import hash_password, verify_password
from anki_assistant.models.base import utcnow
from anki_assistant.models.user import User, UserRole, UserStatus
from anki_assistant.schemas.user import (
    AuthResponse,
    IdentityRead,
    LogoutResponse,
    RefreshResponse,
    UserCreate,
    UserLogin,
    UserRead,
    ValidateResponse,
)
from anki_assistant.services.refresh import RefreshCoordinator, revoke_on_logout, start_session
from anki_assistant.services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=settings.refresh_token_max_age,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def _client_metadata(request: Request) -> tuple[str | None, str | None]:
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None
    return user_agent, ip_address


def _get_user_by_username(session: Session, username: str) -> User | None:
    statement = select(User).where(User.username == username.strip())
    return session.exec(statement).first()


def _username_or_email_taken(session: Session, username: str, email: str) -> bool:
    statement = select(User).where(
        or_(
            func.lower(User.username) == username.lower(),
            func.lower(User.email) == email.lower(),
        )
    )
    return session.exec(statement).first() is not None


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: UserCreate,
    request: Request,
    response: Response,
    session: SessionDep,
) -> AuthResponse:
    username = payload.username.strip()
    email = payload.email.strip().lower()
    conflict = HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="User or email already registered",
    )
    if _username_or_email_taken(session, username, email):
        raise conflict

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(payload.password),
        role=UserRole.user,
        status=UserStatus.active,
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise conflict

    # The user row and its first session row commit together.
    user_agent, ip_address = _client_metadata(request)
    tokens = start_session(SessionStore(session), user, user_agent=user_agent, ip_address=ip_address)
    _set_refresh_cookie(response, tokens.refresh_token)

    logger.info("Registered user %s", user.id)
    return AuthResponse(
        message="User registered successfully",
        access_token=tokens.access_token,
        user=UserRead.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login_user(
    payload: UserLogin,
    request: Request,
    response: Response,
    session: SessionDep,
) -> AuthResponse:
    user = _get_user_by_username(session, payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise InvalidCredentials()
    if user.status != UserStatus.active:
        raise UserInactive("Your account is inactive")

    user.last_login_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    user_agent, ip_address = _client_metadata(request)
    tokens = start_session(SessionStore(session), user, user_agent=user_agent, ip_address=ip_address)
    _set_refresh_cookie(response, tokens.refresh_token)

    return AuthResponse(
        message="Login successful",
        access_token=tokens.access_token,
        user=UserRead.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    responses={401: {}, 403: {}, 404: {}, 500: {}},
)
def refresh_access_token(request: Request, response: Response, session: SessionDep):
    raw_token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    user_agent, ip_address = _client_metadata(request)

    try:
        outcome = RefreshCoordinator(session).refresh(
            raw_token,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    except StorageFailure:
        logger.exception("Error during token refresh")
        failure = auth_error_response(StorageFailure("Error refreshing token"))
        _clear_refresh_cookie(failure)
        return failure
    except AuthError as exc:
        failure = auth_error_response(exc)
        _clear_refresh_cookie(failure)
        return failure

    if outcome.refresh_token is not None:
        _set_refresh_cookie(response, outcome.refresh_token)

    return RefreshResponse(
        access_token=outcome.access_token,
        user=UserRead.model_validate(outcome.user),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(request: Request, response: Response, session: SessionDep) -> LogoutResponse:
    revoke_on_logout(SessionStore(session), request.cookies.get(settings.REFRESH_COOKIE_NAME))
    _clear_refresh_cookie(response)
    return LogoutResponse()


@router.post("/validate", response_model=ValidateResponse)
def validate_access_token(identity: IdentityDep) -> ValidateResponse:
    return ValidateResponse(
        user=IdentityRead(user_id=identity.user_id, role=identity.role),
    )
