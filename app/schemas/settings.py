from pydantic import BaseModel, Field
from typing import Literal, Optional

class PublicSettings(BaseModel):
    join_window_minutes: int
    time_format: Literal["12h", "24h"]

class SettingsUpdate(BaseModel):
    join_window_minutes: Optional[int] = Field(default=None, ge=0, le=120)
    time_format: Optional[Literal["12h", "24h"]] = None
