from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from pydantic import ValidationError

from app.core.config import settings
from app.core.security import decode_access_token
from app.schemas.user import Actor
from app.services.settings_service import SettingsService

# Tokens come from the platform's auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        user_id: str = payload.get("sub")
        role: str = payload.get("role")
        if user_id is None or role is None:
            raise credentials_exception
        return Actor(user_id=user_id, role=role, name=payload.get("name"))
    except (PyJWTError, ValidationError):
        raise credentials_exception

async def get_current_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in ("admin", "system"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor

async def get_settings_service() -> SettingsService:
    return SettingsService()
