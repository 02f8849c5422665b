from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import Field, field_validator

from ..auth import AuthContext, client_ip, get_auth_context
from ..config import get_config
from ..db import transaction
from ..emailing import Mailer, get_mailer, magic_link_message
from ..errors import AuthenticationError, EmailDeliveryError
from ..identity import (
    GoogleOAuthClient,
    authenticate_credentials,
    clear_session_cookie,
    consume_magic_link,
    create_magic_link,
    get_google_client,
    issue_session,
    record_logout,
    register_user,
    revoke_magic_link,
    set_session_cookie,
    sign_in_oauth,
)
from ..schemas import ApiModel, User, envelope
from ..security import BCRYPT_MAX_PASSWORD_BYTES

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailAddress(ApiModel):
    email: str = Field(..., min_length=3, max_length=320)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        return value


class CredentialsRequest(EmailAddress):
    password: str = Field(..., min_length=1)


class RegisterRequest(EmailAddress):
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=120)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return value


def _session_response(response: Response, user: User, *, is_new_user: bool = False) -> dict:
    token = issue_session(user)
    set_session_cookie(response, token)
    return envelope({"token": token, "user": user, "isNewUser": is_new_user})


@router.post("/register")
def register_endpoint(payload: RegisterRequest, request: Request, response: Response) -> dict:
    with transaction() as conn:
        user = register_user(
            conn,
            email=payload.email,
            password=payload.password,
            name=payload.name,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return _session_response(response, user, is_new_user=True)


@router.post("/credentials")
def credentials_endpoint(payload: CredentialsRequest, request: Request, response: Response) -> dict:
    with transaction() as conn:
        user = authenticate_credentials(
            conn,
            email=payload.email,
            password=payload.password,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return _session_response(response, user)


@router.post("/email")
def request_magic_link_endpoint(payload: EmailAddress, mailer: Mailer = Depends(get_mailer)) -> dict:
    config = get_config()
    with transaction() as conn:
        link = create_magic_link(conn, payload.email, config)
    try:
        mailer.send(magic_link_message(payload.email, link.url, sender=config.email_from))
    except EmailDeliveryError:
        with transaction() as conn:
            revoke_magic_link(conn, link)
        raise
    logger.info("magic link sent")
    return envelope(None, message="Check your email for a sign-in link")


@router.get("/email/callback")
def magic_link_callback_endpoint(
    request: Request,
    response: Response,
    token: str = Query(..., min_length=1),
    email: str = Query(..., min_length=1),
) -> dict:
    with transaction() as conn:
        user, created = consume_magic_link(
            conn,
            email=email,
            token=token,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return _session_response(response, user, is_new_user=created)


@router.get("/signin/google")
async def google_signin_endpoint(google: GoogleOAuthClient = Depends(get_google_client)) -> dict:
    return envelope({"url": google.authorization_url()})


@router.get("/callback/google")
async def google_callback_endpoint(
    request: Request,
    response: Response,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    google: GoogleOAuthClient = Depends(get_google_client),
) -> dict:
    if error:
        logger.info("google sign-in declined", extra={"oauth_error": error})
        raise AuthenticationError("OAuth sign-in failed")
    if not code or not state:
        raise AuthenticationError("OAuth sign-in failed")
    google.verify_state(state)
    identity = await google.identify(code)
    with transaction() as conn:
        user, created = sign_in_oauth(
            conn,
            identity,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return _session_response(response, user, is_new_user=created)


@router.get("/session")
async def session_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    expires = datetime.fromtimestamp(auth.claims["exp"], tz=timezone.utc)
    return envelope({"user": auth.claims, "expires": expires.isoformat()})


@router.post("/signout")
async def signout_endpoint(
    request: Request,
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        record_logout(
            conn,
            auth.user,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    clear_session_cookie(response)
    return envelope(None, message="Signed out")
