"""Sign-in paths. Every successful path ends in :func:`issue_session`."""
from __future__ import annotations

import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import Response
from jwt import PyJWKClient
from starlette.concurrency import run_in_threadpool

from .config import AppConfig, get_config
from .errors import AuthenticationError, ConflictError, ServiceUnavailableError
from .repositories import accounts as account_repo
from .repositories import audit as audit_repo
from .repositories import users as user_repo
from .schemas import User
from .security import (
    SESSION_COOKIE_NAME,
    InvalidSessionToken,
    decode_state_token,
    hash_password,
    hash_verification_token,
    issue_session_token,
    issue_state_token,
    verify_password,
)

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@parentwise.com"
DEMO_PASSWORD = "demo123"
DEMO_NAME = "Demo Parent"

INVALID_CREDENTIALS = "Invalid email or password"

MAGIC_LINK_TTL = timedelta(hours=24)

GOOGLE_PROVIDER = "google"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
OAUTH_STATE_PURPOSE = "oauth:google"


def issue_session(user: User, config: Optional[AppConfig] = None) -> str:
    config = config or get_config()
    return issue_session_token(
        user,
        secret=config.auth_secret,
        max_age_seconds=config.session_max_age_seconds,
    )


def set_session_cookie(response: Response, token: str, config: Optional[AppConfig] = None) -> None:
    config = config or get_config()
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=config.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=config.environment == "production",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def record_login(
    conn: sqlite3.Connection,
    user: User,
    *,
    provider: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> User:
    user = user_repo.update_last_login(conn, user)
    audit_repo.record(
        conn,
        user_id=user.id,
        action="LOGIN",
        resource="User",
        resource_id=user.id,
        new_values={"provider": provider},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info("user signed in", extra={"user_id": user.id, "provider": provider})
    return user


def _record_registration(
    conn: sqlite3.Connection,
    user: User,
    *,
    provider: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    audit_repo.record(
        conn,
        user_id=user.id,
        action="REGISTER",
        resource="User",
        resource_id=user.id,
        new_values={"email": user.email, "provider": provider},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info("user registered", extra={"user_id": user.id, "provider": provider})


# Credentials -------------------------------------------------------------


def register_user(
    conn: sqlite3.Connection,
    *,
    email: str,
    password: str,
    name: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> User:
    if user_repo.get_user_by_email(conn, email) is not None:
        raise ConflictError("An account with this email already exists")
    user = user_repo.create_user(conn, email=email, name=name, password_hash=hash_password(password))
    _record_registration(conn, user, provider="credentials", ip_address=ip_address, user_agent=user_agent)
    return user


def _demo_user(
    conn: sqlite3.Connection,
    *,
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> User:
    user = user_repo.get_user_by_email(conn, DEMO_EMAIL)
    if user is not None:
        return user
    user = user_repo.create_user(conn, email=DEMO_EMAIL, name=DEMO_NAME, email_verified=True)
    _record_registration(conn, user, provider="demo", ip_address=ip_address, user_agent=user_agent)
    return user


def authenticate_credentials(
    conn: sqlite3.Connection,
    *,
    email: str,
    password: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> User:
    """Resolve an email/password pair to a user or raise a generic 401."""

    if user_repo.normalize_email(email) == DEMO_EMAIL and password == DEMO_PASSWORD:
        user = _demo_user(conn, ip_address=ip_address, user_agent=user_agent)
        return record_login(conn, user, provider="demo", ip_address=ip_address, user_agent=user_agent)

    user, password_hash = user_repo.get_user_with_password_hash(conn, email)
    if user is None or not verify_password(password, password_hash):
        logger.info("credential sign-in rejected")
        raise AuthenticationError(INVALID_CREDENTIALS)
    return record_login(conn, user, provider="credentials", ip_address=ip_address, user_agent=user_agent)


# OAuth -------------------------------------------------------------------


@dataclass
class OAuthIdentity:
    provider: str
    subject: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


@lru_cache
def _google_jwks_client() -> PyJWKClient:
    return PyJWKClient(GOOGLE_JWKS_URL)


class GoogleOAuthClient:
    """Authorization-code flow with ID-token verification against Google's JWKS."""

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, *, state_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.state_secret = state_secret

    def authorization_url(self) -> str:
        state = issue_state_token(OAUTH_STATE_PURPOSE, secret=self.state_secret)
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    def verify_state(self, state: str) -> None:
        try:
            decode_state_token(state, OAUTH_STATE_PURPOSE, secret=self.state_secret)
        except InvalidSessionToken as exc:
            raise AuthenticationError("Invalid OAuth state") from exc

    async def _exchange_code(self, code: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
        if resp.status_code >= 400:
            logger.warning("google code exchange failed", extra={"status": resp.status_code})
            raise AuthenticationError("OAuth sign-in failed")
        return resp.json()

    def _verify_id_token(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = _google_jwks_client().get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"require": ["iss", "sub", "aud", "exp"]},
            )
        except jwt.PyJWTError as exc:
            logger.warning("google id token rejected", extra={"reason": str(exc)})
            raise AuthenticationError("OAuth sign-in failed") from exc
        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise AuthenticationError("OAuth sign-in failed")
        return claims

    async def identify(self, code: str) -> OAuthIdentity:
        tokens = await self._exchange_code(code)
        id_token = tokens.get("id_token")
        if not id_token:
            raise AuthenticationError("OAuth sign-in failed")
        claims = await run_in_threadpool(self._verify_id_token, id_token)
        if not claims.get("email") or not claims.get("email_verified"):
            raise AuthenticationError("A verified email address is required")
        return OAuthIdentity(
            provider=GOOGLE_PROVIDER,
            subject=str(claims["sub"]),
            email=claims["email"],
            name=claims.get("name"),
            picture=claims.get("picture"),
        )


def get_google_client() -> GoogleOAuthClient:
    config = get_config()
    if not config.google_enabled:
        raise ServiceUnavailableError("Google sign-in is not configured.")
    return GoogleOAuthClient(
        config.google_client_id,
        config.google_client_secret,
        f"{config.auth_url}/api/auth/callback/google",
        state_secret=config.auth_secret,
    )


def sign_in_oauth(
    conn: sqlite3.Connection,
    identity: OAuthIdentity,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[User, bool]:
    """Link or provision the user for a verified provider identity."""

    created = False
    user_id = account_repo.get_user_id_for_account(conn, identity.provider, identity.subject)
    user = user_repo.get_user(conn, user_id) if user_id else None
    if user is None:
        user = user_repo.get_user_by_email(conn, identity.email)
        if user is None:
            user = user_repo.create_user(
                conn,
                email=identity.email,
                name=identity.name,
                image=identity.picture,
                email_verified=True,
            )
            created = True
            _record_registration(conn, user, provider=identity.provider, ip_address=ip_address, user_agent=user_agent)
        account_repo.link_account(
            conn,
            user_id=user.id,
            provider=identity.provider,
            provider_account_id=identity.subject,
        )
    user = user_repo.mark_email_verified(conn, user)
    user = record_login(conn, user, provider=identity.provider, ip_address=ip_address, user_agent=user_agent)
    return user, created


# Magic links -------------------------------------------------------------


@dataclass(frozen=True)
class MagicLink:
    url: str
    identifier: str
    token_hash: str


def create_magic_link(conn: sqlite3.Connection, email: str, config: Optional[AppConfig] = None) -> MagicLink:
    """Store a hashed single-use token and return the sign-in URL carrying it."""

    config = config or get_config()
    identifier = user_repo.normalize_email(email)
    token = secrets.token_urlsafe(32)
    token_hash = hash_verification_token(token)
    account_repo.create_verification_token(
        conn,
        identifier=identifier,
        token_hash=token_hash,
        expires_at=datetime.now(tz=timezone.utc) + MAGIC_LINK_TTL,
    )
    query = urlencode({"token": token, "email": identifier})
    return MagicLink(
        url=f"{config.auth_url}/api/auth/email/callback?{query}",
        identifier=identifier,
        token_hash=token_hash,
    )


def revoke_magic_link(conn: sqlite3.Connection, link: MagicLink) -> None:
    account_repo.delete_verification_token(conn, identifier=link.identifier, token_hash=link.token_hash)


def consume_magic_link(
    conn: sqlite3.Connection,
    *,
    email: str,
    token: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[User, bool]:
    identifier = user_repo.normalize_email(email)
    expires_at = account_repo.consume_verification_token(
        conn,
        identifier=identifier,
        token_hash=hash_verification_token(token),
    )
    if expires_at is None or expires_at <= datetime.now(tz=timezone.utc):
        raise AuthenticationError("This sign-in link is invalid or has expired")

    created = False
    user = user_repo.get_user_by_email(conn, identifier)
    if user is None:
        user = user_repo.create_user(conn, email=identifier, email_verified=True)
        created = True
        _record_registration(conn, user, provider="email", ip_address=ip_address, user_agent=user_agent)
    user = user_repo.mark_email_verified(conn, user)
    user = record_login(conn, user, provider="email", ip_address=ip_address, user_agent=user_agent)
    return user, created


def record_logout(
    conn: sqlite3.Connection,
    user: User,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    audit_repo.record(
        conn,
        user_id=user.id,
        action="LOGOUT",
        resource="User",
        resource_id=user.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info("user signed out", extra={"user_id": user.id})
