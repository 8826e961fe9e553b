"""
Auth API Router.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from folio.api.deps import get_auth_service
from folio.services.auth_service import AuthError, AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Pydantic Schemas ----------

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserSchema(BaseModel):
    email: str


class LoginResponse(BaseModel):
    success: bool
    token: str
    user: UserSchema


# ---------- Endpoints ----------

@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Exchange the configured email/password pair for a token."""
    try:
        return auth.login(body.email, body.password)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception:
        logger.exception("Login error")
        raise HTTPException(status_code=500, detail="Login failed. Please try again.")


@router.get("/verify")
async def verify(
    authorization: Optional[str] = Header(default=None),
    token: Optional[str] = Query(default=None),
    auth: AuthService = Depends(get_auth_service),
):
    """Check a token from the Bearer header or the ``token`` query parameter."""
    if authorization:
        token = authorization.replace("Bearer ", "", 1)

    email = auth.verify(token)
    if email is None:
        return JSONResponse(status_code=401, content={"success": False, "authenticated": False})
    return {"success": True, "authenticated": True, "user": {"email": email}}
