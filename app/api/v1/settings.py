from fastapi import APIRouter, Depends

from app.api.deps import get_current_admin, get_settings_service
from app.schemas.settings import PublicSettings, SettingsUpdate
from app.schemas.user import Actor
from app.services.settings_service import SettingsService

router = APIRouter()

@router.get("/public", response_model=PublicSettings)
async def read_public_settings(
    service: SettingsService = Depends(get_settings_service)
):
    return await service.get_public_settings()

@router.put("", response_model=PublicSettings)
async def update_settings(
    request: SettingsUpdate,
    actor: Actor = Depends(get_current_admin),
    service: SettingsService = Depends(get_settings_service)
):
    return await service.update(request)
