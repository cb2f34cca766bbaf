from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from foodorder.config import Settings
from foodorder.services.codegen import CodeGenerator
from foodorder.util.security import decode_token

auth_scheme = HTTPBearer(auto_error=False)

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_codegen(request: Request) -> CodeGenerator:
    return request.app.state.codegen

def require_auth(
    creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Staff identity from the bearer token; the identity service issues these."""
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return decode_token(creds.credentials, settings)
    except (jwt.InvalidTokenError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
