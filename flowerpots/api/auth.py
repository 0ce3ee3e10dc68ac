from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from flowerpots.auth import crud
from flowerpots.auth.deps import Principal, get_principal, require_principal
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.errors import Unauthenticated, ValidationError
from flowerpots.mail import (
    deliver,
    email_change_email,
    password_reset_email,
    verification_email,
    welcome_email,
)

from .common import ok
from .schemas import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    UpgradeRequest,
)


router = APIRouter(prefix="/auth", tags=["auth"])


def _session(ctx: AppContext, row: Any, **extra: Any) -> Dict[str, Any]:
    return ok(
        userId=row["id"],
        token=crud.issue_token(ctx.cfg, row),
        userType=row["user_type"],
        email=row["email"],
        displayName=row["display_name"],
        emailVerified=int(row["email_verified"] or 0) == 1,
        **extra,
    )


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/register")
def register(
    payload: RegisterRequest,
    background: BackgroundTasks,
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")

    with connect(ctx.cfg.DB_DSN) as conn:
        row, verification_token = crud.register_user(
            conn,
            email=payload.email,
            password=payload.password,
            display_name=payload.display_name,
        )

    base = ctx.cfg.APP_BASE_URL
    background.add_task(deliver, ctx.mailer, verification_email(row["email"], verification_token, base))
    background.add_task(deliver, ctx.mailer, welcome_email(row["email"], row["display_name"], base))
    return _session(ctx, row, message="Registration successful. Please check your email to verify your address.")


@router.post("/login")
def login(payload: LoginRequest, ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        row = crud.authenticate(conn, email=payload.email or "", password=payload.password or "")
    return _session(ctx, row)


@router.post("/identify")
def identify(request: Request, ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        crud.check_identify_throttle(conn, ctx.cfg, _client_address(request))
        row = crud.create_anonymous_user(conn)
    return ok(userId=row["id"], token=crud.issue_token(ctx.cfg, row), userType="anonymous")


@router.post("/upgrade")
def upgrade(
    payload: UpgradeRequest,
    background: BackgroundTasks,
    principal: Optional[Principal] = Depends(get_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    if principal is None:
        raise Unauthenticated("Authentication required")
    if not principal.is_anonymous:
        raise ValidationError("Only anonymous accounts can be upgraded")
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")

    with connect(ctx.cfg.DB_DSN) as conn:
        row, verification_token = crud.upgrade_anonymous_user(
            conn,
            principal_user_id=principal.user_id,
            anonymous_user_id=payload.anonymous_user_id,
            email=payload.email,
            password=payload.password,
            display_name=payload.display_name,
        )

    background.add_task(
        deliver, ctx.mailer, verification_email(row["email"], verification_token, ctx.cfg.APP_BASE_URL)
    )
    return _session(ctx, row, message="Account upgraded successfully. Your data has been migrated.")


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    background: BackgroundTasks,
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        found = crud.request_password_reset(conn, payload.email or "")

    if found is not None:
        email, token = found
        background.add_task(deliver, ctx.mailer, password_reset_email(email, token, ctx.cfg.APP_BASE_URL))
    # Same answer either way, so the endpoint does not reveal which emails have accounts.
    return ok(message="If the email exists, a reset link will be sent.")


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        crud.reset_password(conn, token=payload.token or "", new_password=payload.new_password or "")
    return ok(message="Password reset successful. You can now login with your new password.")


@router.get("/verify-email")
def verify_email(token: str = Query(""), ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        row = crud.verify_email(conn, token)
    return ok(message="Email verified successfully", email=row["email"])


@router.post("/send-verification-email")
def send_verification_email(
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        email, token = crud.new_verification_token(conn, principal.user_id)
    background.add_task(deliver, ctx.mailer, verification_email(email, token, ctx.cfg.APP_BASE_URL))
    return ok(message="Verification email sent")


@router.post("/change-email")
def change_email(
    payload: ChangeEmailRequest,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        current, new_email, token = crud.request_email_change(conn, principal.user_id, payload.new_email or "")
    background.add_task(
        deliver, ctx.mailer, email_change_email(new_email, current, token, ctx.cfg.APP_BASE_URL)
    )
    return ok(message="Verification email sent to the new address", newEmail=new_email)


@router.get("/verify-new-email")
def verify_new_email(token: str = Query(""), ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        row = crud.confirm_email_change(conn, token)
    return ok(message="Email changed successfully", email=row["email"])


@router.get("/me")
def me(principal: Principal = Depends(require_principal), ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        user = crud.get_me(conn, ctx.cfg, principal.user_id)
    return ok(user=user)


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        row = crud.update_profile(conn, principal.user_id, payload.supplied())
    return ok(user=crud.public_user(row), message="Profile updated")


@router.put("/password")
def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        crud.change_password(
            conn,
            principal.user_id,
            current_password=payload.current_password or "",
            new_password=payload.new_password or "",
        )
    return ok(message="Password changed successfully")
