"""HTTP route definitions for the account service."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..domain.account import PublicAccount, Role, normalize_email
from ..domain.contracts import RegisterAccountInput
from ..domain.errors import ValidationError
from ..domain.service import AccountService
from ..security.access import AccessGate
from ..security.rate_limiter import RateLimiter
from ..security.tokens import SessionClaims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

TOKEN_NAME = "x-access-token"


class AccountResponse(BaseModel):
    """Serialised public view of an account."""

    account_id: str
    name: str
    email: EmailStr
    role: Role
    avatar_url: str
    time_zone: str
    created_at: datetime

    @classmethod
    def from_domain(cls, account: PublicAccount) -> "AccountResponse":
        """Build a response model from the domain projection."""
        return cls(
            account_id=account.account_id,
            name=account.name,
            email=account.email,
            role=account.role,
            avatar_url=account.avatar_url,
            time_zone=account.time_zone,
            created_at=account.created_at,
        )


class CreateAccountRequest(BaseModel):
    """Payload accepted when a super-admin registers a new account."""

    name: str
    email: EmailStr
    password: str
    confirm_password: str
    role: Role = Role.user
    time_zone: str = "UTC"
    avatar_url: str | None = None


class CreateAccountResponse(BaseModel):
    message: str
    account: AccountResponse
    warnings: list[str] = []


class UpdateProfileRequest(BaseModel):
    """Partial profile update; unknown keys are forwarded and stripped by the store."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    email: EmailStr | None = None
    avatar_url: str | None = None
    time_zone: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    """Login outcome; the token is also set as an HTTP-only cookie."""

    message: str
    account: AccountResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    message: str


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_gate(request: Request) -> AccessGate:
    gate: AccessGate = request.app.state.access_gate
    return gate


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def presented_token(
    cookie_token: str | None = Cookie(default=None, alias=TOKEN_NAME),
    header_token: str | None = Header(default=None, alias=TOKEN_NAME),
) -> str | None:
    """Return the session token from the cookie, falling back to the header."""
    return cookie_token or header_token


def current_claims(
    token: str | None = Depends(presented_token),
    gate: AccessGate = Depends(get_gate),
) -> SessionClaims:
    """Authenticate the caller and expose their session claims to the route."""
    return gate.authenticate(token)


@router.post("/users", response_model=CreateAccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    token: str | None = Depends(presented_token),
    claims: SessionClaims = Depends(current_claims),
    service: AccountService = Depends(get_service),
) -> CreateAccountResponse:
    """Register an account; only super-admins may call this."""
    result = service.register_account(
        token,
        RegisterAccountInput(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            confirm_password=payload.confirm_password,
            role=payload.role,
            time_zone=payload.time_zone,
            avatar_url=payload.avatar_url,
        ),
    )
    return CreateAccountResponse(
        message=(
            f"{result.account.name} thank you for Registering! A verification email will be "
            "sent to your mail. Please verify and login."
        ),
        account=AccountResponse.from_domain(result.account),
        warnings=result.warnings,
    )


@router.get("/users/confirm/{token}", response_model=MessageResponse)
def confirm_email(token: str, service: AccountService = Depends(get_service)) -> MessageResponse:
    """Redeem a verification token mailed at registration."""
    service.verify_email(token)
    return MessageResponse(message="Email verified successfully! You can now login.")


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    service: AccountService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
) -> LoginResponse:
    """Exchange credentials for a session token."""
    rate_key = f"login:{normalize_email(payload.email)}"
    if not limiter.allow(rate_key):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")

    result = service.login(payload.email, payload.password)
    limiter.reset(rate_key)
    response.set_cookie(
        TOKEN_NAME,
        result.token,
        max_age=result.expires_in,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return LoginResponse(
        message=f"Welcome {result.account.name}!",
        account=AccountResponse.from_domain(result.account),
        access_token=result.token,
        expires_in=result.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response) -> MessageResponse:
    """Clear the session cookie; the token itself simply expires."""
    response.delete_cookie(TOKEN_NAME)
    return MessageResponse(message="Logged out successfully!")


@router.get("/users/{account_id}", response_model=AccountResponse)
def get_profile(
    account_id: str,
    claims: SessionClaims = Depends(current_claims),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.get_profile(account_id))


@router.patch("/users/{account_id}", response_model=AccountResponse)
def update_profile(
    account_id: str,
    payload: UpdateProfileRequest,
    claims: SessionClaims = Depends(current_claims),
    gate: AccessGate = Depends(get_gate),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Edit profile fields of the caller's own account, or any account for admins."""
    gate.authorize_profile_edit(claims, account_id)
    account = service.update_profile(
        claims.account_id, account_id, payload.model_dump(exclude_unset=True)
    )
    return AccountResponse.from_domain(account)


@router.put("/users/{account_id}/avatar", response_model=AccountResponse)
async def upload_avatar(
    account_id: str,
    request: Request,
    claims: SessionClaims = Depends(current_claims),
    gate: AccessGate = Depends(get_gate),
    service: AccountService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
) -> AccountResponse:
    """Replace the profile picture with the raw image sent as the request body."""
    gate.authorize_profile_edit(claims, account_id)
    content = await _read_bounded_body(request, settings.avatar_max_bytes)
    content_type = request.headers.get("content-type", "")
    account = await run_in_threadpool(service.replace_avatar, account_id, bytes(content), content_type)
    return AccountResponse.from_domain(account)


async def _read_bounded_body(request: Request, limit: int) -> bytearray:
    """Read the request body, refusing it once it grows past ``limit`` bytes."""
    too_large = ValidationError(f"avatar image exceeds {limit} bytes")
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise too_large
    content = bytearray()
    async for chunk in request.stream():
        content.extend(chunk)
        if len(content) > limit:
            raise too_large
    return content
