"""
api/routes/auth.py
------------------
Authentication endpoints.

POST /login               — Exchange credentials for a JWT access token.
GET  /me                  — Return the authenticated user's profile.
POST /me/change-password  — Change password; clears must_change_password.
POST /forgot-password     — E-mail a one-hour reset link.
POST /reset-password      — Set a new password with a reset token.

There is no self-registration: users are created by admins and managers
(see api/routes/tenants.py).
"""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import settings
from chatdesk.core.security import create_access_token
from chatdesk.db.session import get_db
from chatdesk.dependencies import get_current_user
from chatdesk.models.user import User
from chatdesk.schemas.user import (
    ForgotPasswordRequest,
    PasswordChange,
    ResetPasswordRequest,
    TokenResponse,
    UserRead,
)
from chatdesk.services.email_service import EmailService, get_email_service
from chatdesk.services.user_service import UserService

router = APIRouter(tags=["Authentication"])


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and receive a JWT access token",
)
async def login(
    # The "username" form field contains the email address.
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TokenResponse:
    """
    Authenticate with email + password and receive a signed JWT.

    Send as form data (not JSON):
        -d "username=you@email.com&password=yourpassword"

    Invited users receive must_change_password=true and should be sent to
    the change-password screen.
    """
    user = await UserService.authenticate(db, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        subject=user.id,
        tenant_id=user.tenant_id,
        role=user.role,
        expires_delta=expires,
    )

    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=int(expires.total_seconds()),
        user=UserRead.model_validate(user),
    )


@router.get(
    "/me",
    response_model=UserRead,
    summary="Get the currently authenticated user",
)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserRead:
    return UserRead.model_validate(current_user)


@router.post(
    "/me/change-password",
    response_model=UserRead,
    summary="Change the current user's password",
)
async def change_password(
    body: PasswordChange,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserRead:
    user = await UserService.change_password(
        db, current_user, body.current_password, body.new_password
    )
    return UserRead.model_validate(user)


@router.post(
    "/forgot-password",
    summary="Request a password reset e-mail",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    email: Annotated[EmailService, Depends(get_email_service)],
) -> dict:
    """Always succeeds, whether or not the address has an account."""
    issued = await UserService.request_password_reset(db, body.email)
    if issued is not None:
        user, token = issued
        await db.commit()
        background_tasks.add_task(email.send_password_reset, user.email, token)
    return {"success": True}


@router.post(
    "/reset-password",
    summary="Set a new password using a reset token",
)
async def reset_password(
    body: ResetPasswordRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await UserService.reset_password(db, body.token, body.new_password)
    return {"success": True}
