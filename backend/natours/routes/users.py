"""
Natours Backend: User and Authentication Route Handlers
========================================================

What:  /api/v1/users endpoints: the authentication flow, self-service
       profile routes and admin user management.
How:   Login-like routes answer through send_token (JWT in body and cookie);
       everything else goes through the JSend success helper.

Access:
    public      signup, login, logout, isloggedin, forgotpassword, resetpassword
    protected   updatemypassword, me, updateme, deleteme
    admin       list, create, get, update, delete
"""

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from natours.database import get_db_session
from natours.dependencies import get_current_user, read_payload, restrict_to
from natours.models.user import User
from natours.responses import JWT_COOKIE, clear_token, no_content, send_token, success
from natours.schemas.common import ErrorResponse
from natours.schemas.user import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
    UserResponse,
    UserUpdate,
)
from natours.services.auth_service import auth_service
from natours.services.email_service import email_service
from natours.services.user_service import user_service

router = APIRouter(
    prefix="/api/v1/users",
    tags=["Users"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)

admin_only = [Depends(restrict_to("admin"))]


def _user_json(user: User) -> dict:
    return {"user": UserResponse.model_validate(user).to_json()}


# ── Authentication ────────────────────────────────────────────────────────

@router.post("/signup", status_code=201, summary="Create an account and log in")
async def signup(
    payload: SignupRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
):
    user = await auth_service.signup(db, payload)
    # Runs after the response is sent; send_welcome never raises
    background_tasks.add_task(
        email_service.send_welcome, user.name, user.email, f"{str(request.base_url).rstrip('/')}/me"
    )
    return send_token(user, 201, request)


@router.post("/login", summary="Log in with email and password")
async def login(
    request: Request,
    payload: Optional[LoginRequest] = None,
    db: AsyncSession = Depends(get_db_session),
):
    payload = payload or LoginRequest()
    user = await auth_service.login(db, payload.email, payload.password)
    return send_token(user, 200, request)


@router.get("/logout", summary="Log out (replace the jwt cookie)")
async def logout():
    return clear_token()


@router.get("/isloggedin", summary="Check the session cookie")
async def is_logged_in(request: Request, db: AsyncSession = Depends(get_db_session)):
    user = await auth_service.is_logged_in(db, request.cookies.get(JWT_COOKIE))
    return success(_user_json(user))


@router.post("/forgotpassword", summary="Email a password reset link")
async def forgot_password(
    request: Request,
    payload: Optional[ForgotPasswordRequest] = None,
    db: AsyncSession = Depends(get_db_session),
):
    email = payload.email if payload else None
    await auth_service.forgot_password(db, email, str(request.base_url))
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/resetpassword/{token}", summary="Set a new password with a reset token")
async def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    user = await auth_service.reset_password(db, token, payload)
    return send_token(user, 200, request)


# ── Self-service ──────────────────────────────────────────────────────────

@router.patch("/updatemypassword", summary="Change the current user's password")
async def update_my_password(
    payload: UpdatePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user = await auth_service.update_password(db, user, payload)
    return send_token(user, 200, request)


@router.get("/me", summary="The current user's profile")
async def get_me(user: User = Depends(get_current_user)):
    return success(UserResponse.model_validate(user).to_json())


@router.patch("/updateme", summary="Update name, email or photo (JSON or multipart)")
async def update_me(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    fields, files = await read_payload(request)
    photos = files.get("photo", [])
    user = await user_service.update_me(db, user, fields, photo=photos[-1] if photos else None)
    return success(_user_json(user))


@router.delete("/deleteme", status_code=204, summary="Deactivate the current user")
async def delete_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await user_service.delete_me(db, user)
    return no_content()


# ── Admin ─────────────────────────────────────────────────────────────────

@router.get("", summary="List users", dependencies=admin_only)
async def get_all_users(request: Request, db: AsyncSession = Depends(get_db_session)):
    users = await user_service.list_users(db, request.query_params.multi_items())
    return success(users, results=len(users))


@router.post("", summary="Not supported; use /signup", dependencies=admin_only)
async def create_user():
    user_service.create_user()


@router.get("/{user_id}", summary="Get one user", dependencies=admin_only)
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    user = await user_service.get_user(db, user_id)
    return success(UserResponse.model_validate(user).to_json())


@router.patch("/{user_id}", summary="Update a user", dependencies=admin_only)
async def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db_session),
):
    user = await user_service.update_user(db, user_id, payload)
    return success(UserResponse.model_validate(user).to_json())


@router.delete("/{user_id}", status_code=204, summary="Delete a user", dependencies=admin_only)
async def delete_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    await user_service.delete_user(db, user_id)
    return no_content()
