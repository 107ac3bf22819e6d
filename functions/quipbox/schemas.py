"""
Pydantic schemas for the quipbox API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from quipbox.db import NewMessage


class MessageIn(BaseModel):
    """One document of the admin bulk insert body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(..., alias="userId", min_length=1)
    category: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    active: Optional[bool] = None
    weight: Optional[float] = None
    message_id: Optional[str] = Field(default=None, alias="messageId")

    def to_new_message(self) -> NewMessage:
        return NewMessage(
            user_id=self.user_id,
            category=self.category,
            text=self.text,
            active=True if self.active is None else self.active,
            weight=1.0 if self.weight is None else self.weight,
            client_message_id=self.message_id,
        )


class InsertMessagesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    inserted_count: int = Field(..., alias="insertedCount")
    inserted_ids: list[str] = Field(default_factory=list, alias="insertedIds")
    users_updated: int = Field(default=0, alias="usersUpdated")


class UserUpsertPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response: Optional[str] = None


class UserUpsertResponse(BaseModel):
    id: str
    response: str


class HealthResponse(BaseModel):
    ok: bool
    mock: bool
