"""Domain Entities - Auth"""
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID, uuid4
from typing import Optional

from domain.enums import Role
from domain.value_objects import Requester


class User(BaseModel):
    """User Entity"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role = Role.DRIVER
    disabled: bool = False

    model_config = ConfigDict(from_attributes=True)

    def as_requester(self) -> Requester:
        return Requester(requester_id=self.user_id, role=self.role)


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str
