from pydantic import BaseModel
from typing import Literal, Optional
from uuid import UUID

ActorRole = Literal["pet_owner", "veterinarian", "admin", "system"]

class Actor(BaseModel):
    """Who is performing an operation. Passed explicitly to every transition."""
    user_id: Optional[UUID] = None
    role: ActorRole
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
