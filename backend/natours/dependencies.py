"""
Natours Backend: Route Dependencies
====================================

What:  Authentication guards and the JSON-or-multipart body reader.
How:   FastAPI dependencies. get_current_user shares the request's database
       session (FastAPI caches get_db_session per request), so the user it
       returns can be modified and flushed by the route's service call.

Usage:
    @router.get("/me")
    async def me(user: User = Depends(get_current_user)): ...

    @router.delete("/{id}", dependencies=[Depends(restrict_to("admin"))])
    async def delete(...): ...
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from natours.database import get_db_session
from natours.exceptions import AuthenticationError, PermissionDeniedError, ValidationError
from natours.models.user import User
from natours.responses import JWT_COOKIE, LOGGED_OUT
from natours.services.auth_service import auth_service
from natours.services.image_service import ImageUpload

logger = logging.getLogger(__name__)


def extract_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, else the jwt cookie."""
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        return token or None
    cookie = request.cookies.get(JWT_COOKIE)
    if cookie and cookie != LOGGED_OUT:
        return cookie
    return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Protect: require a valid token for an active user."""
    token = extract_token(request)
    if token is None:
        raise AuthenticationError("You are not logged in! Please log in to get access.")
    user = await auth_service.authenticate(db, token)
    request.state.user_id = str(user.id)
    return user


def restrict_to(*roles: str):
    """Dependency factory: the current user must have one of `roles`."""

    async def check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning("User %s (%s) denied; requires one of %s", user.id, user.role, roles)
            raise PermissionDeniedError()
        return user

    return check_role


async def read_payload(request: Request) -> Tuple[Dict[str, Any], Dict[str, List[ImageUpload]]]:
    """
    Read a JSON or multipart/form-data body.

    Returns (fields, files). For multipart, every file part is read into an
    ImageUpload and grouped by field name; text parts become fields (the
    last value wins for repeated keys).
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        fields: Dict[str, Any] = {}
        files: Dict[str, List[ImageUpload]] = defaultdict(list)
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                content = await value.read()
                if content:
                    files[key].append(
                        ImageUpload(
                            filename=value.filename or "",
                            content_type=value.content_type or "",
                            content=content,
                        )
                    )
            else:
                fields[key] = value
        return fields, dict(files)

    raw = await request.body()
    if not raw:
        return {}, {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError(message="Request body is not valid JSON.")
    if not isinstance(body, dict):
        raise ValidationError(message="Request body must be a JSON object.")
    return body, {}
