"""
Client-side session handling for the Anki Assistant API.

The manager wraps an ``httpx.Client``. The refresh token travels only as the
HttpOnly cookie kept in the client's cookie jar. The access token and its
expiry live in memory on the manager and are never persisted.

Refresh is single-flight: concurrent callers that need a new access token
share one ``POST /auth/refresh`` call and all observe its result.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import httpx
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

DEFAULT_SKEW_BUFFER_SECONDS = 10.0
RETRYABLE_STATUSES = frozenset({401, 403})


class NotAuthenticatedError(Exception):
    """There is no usable session for the request."""


class SessionExpiredError(NotAuthenticatedError):
    """The session could not be refreshed; local credentials were cleared."""

    def __init__(self, message: str, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response


def token_expiry(access_token: str) -> float:
    """Read ``exp`` without verifying the signature; the server does that."""
    try:
        claims = jwt.get_unverified_claims(access_token)
    except JWTError:
        return 0.0
    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        return float(exp)
    return 0.0


class ClientSessionManager:
    def __init__(
        self,
        client: httpx.Client,
        *,
        skew_buffer: float = DEFAULT_SKEW_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
        login_path: str = "/auth/login",
        register_path: str = "/auth/register",
        refresh_path: str = "/auth/refresh",
        logout_path: str = "/auth/logout",
    ) -> None:
        self.client = client
        self.skew_buffer = skew_buffer
        self.clock = clock
        self.login_path = login_path
        self.register_path = register_path
        self.refresh_path = refresh_path
        self.logout_path = logout_path

        self._lock = threading.Lock()
        self._refresh_finished = threading.Condition(self._lock)
        self._refreshing = False
        # Bumped on every credential change so callers can tell a stale view apart.
        self._generation = 0
        self._access_token: str | None = None
        self._expires_at = 0.0
        self.user: dict[str, Any] | None = None

        self._init_lock = threading.Lock()
        self._initialized = False
        self._initial_result = False

    @property
    def access_token(self) -> str | None:
        with self._lock:
            return self._access_token

    @property
    def expires_at(self) -> float:
        with self._lock:
            return self._expires_at

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def _set_credentials_locked(self, access_token: str | None, user: dict[str, Any] | None) -> None:
        self._access_token = access_token
        self._expires_at = token_expiry(access_token) if access_token else 0.0
        self.user = user
        self._generation += 1

    def _snapshot(self) -> tuple[str | None, int, bool]:
        with self._lock:
            stale = self._access_token is None or self.clock() >= self._expires_at - self.skew_buffer
            return self._access_token, self._generation, stale

    def needs_refresh(self) -> bool:
        return self._snapshot()[2]

    def _accept_auth_response(self, response: httpx.Response) -> dict[str, Any]:
        response.raise_for_status()
        body = response.json()
        with self._lock:
            self._set_credentials_locked(body["accessToken"], body.get("user"))
        return body

    def login(self, username: str, password: str) -> dict[str, Any]:
        response = self.client.post(self.login_path, json={"username": username, "password": password})
        return self._accept_auth_response(response)

    def register(self, username: str, email: str, password: str) -> dict[str, Any]:
        response = self.client.post(
            self.register_path,
            json={"username": username, "email": email, "password": password},
        )
        return self._accept_auth_response(response)

    def initialize(self) -> bool:
        """
        Restore the session from the refresh cookie.

        Runs the check once per manager; repeated or concurrent calls wait for
        and return the first result.
        """
        with self._init_lock:
            if not self._initialized:
                self._initialized = True
                self._initial_result = self.refresh()
            return self._initial_result

    def refresh(self, *, since: int | None = None) -> bool:
        """
        Obtain a new access token, sharing any refresh already in flight.

        ``since`` is the credential generation the caller saw as stale. If the
        credentials changed after that, no new call is made.
        A failed refresh forces a logout.
        """
        with self._lock:
            if self._refreshing:
                while self._refreshing:
                    self._refresh_finished.wait()
                return self._access_token is not None
            if since is not None and since != self._generation:
                return self._access_token is not None
            self._refreshing = True

        ok = False
        try:
            ok = self._request_new_access_token()
        finally:
            with self._lock:
                if not ok:
                    self._set_credentials_locked(None, None)
                self._refreshing = False
                self._refresh_finished.notify_all()
            if not ok:
                self._notify_logout()
        return ok

    def _request_new_access_token(self) -> bool:
        try:
            response = self.client.post(self.refresh_path)
        except httpx.HTTPError as exc:
            logger.warning("Token refresh request failed: %s", exc)
            return False

        if response.status_code != httpx.codes.OK:
            logger.info("Token refresh rejected with status %s", response.status_code)
            return False

        try:
            body = response.json()
            access_token = body["accessToken"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Token refresh returned an unexpected body")
            return False

        with self._lock:
            self._set_credentials_locked(access_token, body.get("user"))
        return True

    def logout(self) -> None:
        """Drop local credentials, then tell the server. Never raises for network errors."""
        with self._lock:
            self._set_credentials_locked(None, None)
        self._notify_logout()

    def _notify_logout(self) -> None:
        try:
            self.client.post(self.logout_path)
        except httpx.HTTPError as exc:
            logger.warning("Logout request failed: %s", exc)

    def _send(self, method: str, url: str, token: str | None, **kwargs: Any) -> httpx.Response:
        if token is None:
            raise NotAuthenticatedError("No access token available")
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        return self.client.request(method, url, headers=headers, **kwargs)

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token, generation, stale = self._snapshot()
        if stale:
            if not self.refresh(since=generation):
                raise SessionExpiredError("Session could not be refreshed")
            token, generation, _ = self._snapshot()

        response = self._send(method, url, token, **kwargs)
        if response.status_code not in RETRYABLE_STATUSES:
            return response

        logger.info("%s %s returned %s; refreshing and retrying once", method, url, response.status_code)
        if not self.refresh(since=generation):
            raise SessionExpiredError("Session could not be refreshed", response=response)

        token, _, _ = self._snapshot()
        retry = self._send(method, url, token, **kwargs)
        if retry.status_code in RETRYABLE_STATUSES:
            self.logout()
            raise SessionExpiredError("Request rejected after refresh", response=retry)
        return retry

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)
