from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.src.enums import UserRole


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str


class MessageResponse(BaseModel):
    message: str


class Identity(BaseModel):
    """Caller identity carried in the signed `state_token` cookie."""

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(alias="userName")
    user_role: UserRole = Field(alias="userRole")
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    nic: Optional[str] = None
