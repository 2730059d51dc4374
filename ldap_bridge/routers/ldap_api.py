from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import USER_MESSAGES, AuthError, AuthErrorKind
from ..provider import LdapAuthenticationProvider
from ..repo import db_session
from ..services import audit_login

router = APIRouter()


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


def _provider(request: Request) -> LdapAuthenticationProvider:
    return request.app.state.provider


def _error_response(e: AuthError) -> JSONResponse:
    code = status.HTTP_502_BAD_GATEWAY if e.kind is AuthErrorKind.CONNECTION_FAILED else status.HTTP_400_BAD_REQUEST
    return JSONResponse({"ok": False, "error": e.kind.value, "message": e.user_message}, status_code=code)


@router.post("/ldap-api/test-server-bind")
def test_server_bind(request: Request):
    return _provider(request).test_server_bind().to_dict()


@router.post("/ldap-api/test-ldap-filters")
def test_ldap_filters(request: Request):
    try:
        return _provider(request).test_filters().to_dict()
    except AuthError as e:
        return _error_response(e)


@router.get("/ldap-api/ldap-user-search")
def ldap_user_search(request: Request, username: str = ""):
    username = username.strip()
    if not username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="username is required")
    try:
        identity = _provider(request).locate_user(username)
    except AuthError as e:
        if e.kind is AuthErrorKind.USER_NOT_FOUND:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from e
        return _error_response(e)
    return {"dn": identity.entry.dn, "username": identity.username}


@router.post("/auth/login")
def login(request: Request, body: LoginRequest):
    username = body.username.strip()
    ip = request.client.host if request.client else ""
    ua = request.headers.get("user-agent", "")

    with db_session(request.app.state.session_factory) as db:
        if not username or not body.password:
            audit_login(db, username, False, ip, ua, "invalid", "empty-credentials")
            return JSONResponse(
                {"ok": False, "message": USER_MESSAGES[AuthErrorKind.INVALID_CREDENTIALS]},
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        result = _provider(request).authenticate(username, body.password)
        if not result.success:
            audit_login(db, username, False, ip, ua, result.error.value, "ldap-auth-failed")
            return JSONResponse({"ok": False, "message": result.message}, status_code=status.HTTP_401_UNAUTHORIZED)

        audit_login(db, result.username, True, ip, ua, "ok", "")
    return {"username": result.username, "is_admin": result.is_admin}
