"""
Natours Backend: JSend Response Helpers
========================================

What:  Builders for the success envelope, the error envelope and the JWT cookie response.
Why:   Every route answers with the same envelope:
           {"status": "success", "results": <n, lists only>, "data": ...}
       and every login-like route (signup, login, reset, update password)
       answers with the same token response. One helper each keeps those
       shapes from drifting.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from natours.config import settings
from natours.middleware.request_id import request_id_var
from natours.models.user import User
from natours.schemas.user import UserResponse
from natours.security import sign_token

JWT_COOKIE = "jwt"
LOGGED_OUT = "loggedout"


def success(data: Any, status_code: int = 200, results: Optional[int] = None) -> JSONResponse:
    body = {"status": "success"}
    if results is not None:
        body["results"] = results
    body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def no_content() -> Response:
    return Response(status_code=204)


def error_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Error envelope; `details` is only echoed back in development."""
    content: Dict[str, Any] = {
        "status": "fail" if 400 <= status_code < 500 else "error",
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details and settings.is_development:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _is_secure(request: Request) -> bool:
    return request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"


def send_token(user: User, status_code: int, request: Request) -> JSONResponse:
    """
    Issue a JWT for `user`: in the body and as an httpOnly `jwt` cookie.

    The cookie is marked Secure when the request arrived over HTTPS, either
    directly or through a TLS-terminating proxy (X-Forwarded-Proto).
    """
    token = sign_token(user.id)
    response = JSONResponse(
        status_code=status_code,
        content={
            "status": "success",
            "token": token,
            "data": {"user": UserResponse.model_validate(user).to_json()},
        },
    )
    lifetime = timedelta(days=settings.jwt_cookie_expires_in_days)
    response.set_cookie(
        JWT_COOKIE,
        token,
        max_age=int(lifetime.total_seconds()),
        expires=datetime.now(timezone.utc) + lifetime,
        httponly=True,
        secure=_is_secure(request),
        samesite="lax",
    )
    return response


def clear_token() -> JSONResponse:
    """Overwrite the cookie with a dummy value that expires in 10 seconds."""
    response = JSONResponse(status_code=200, content={"status": "success"})
    response.set_cookie(
        JWT_COOKIE,
        LOGGED_OUT,
        max_age=10,
        expires=datetime.now(timezone.utc) + timedelta(seconds=10),
        httponly=True,
        samesite="lax",
    )
    return response
