# minimentor/conversation_models.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_TITLE = "Chat conversation"
TITLE_MAX_CHARS = 50


class _Record(BaseModel):
    # Stored JSON uses camelCase keys; python code uses snake_case attributes.
    model_config = ConfigDict(populate_by_name=True)

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Turn(_Record):
    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    image_prompt: Optional[str] = Field(default=None, alias="imagePrompt")

    def without_media(self, image: bool = True, audio: bool = True) -> "Turn":
        update = {}
        if image:
            update["image_url"] = None
        if audio:
            update["audio_url"] = None
        return self.model_copy(update=update)


class Conversation(_Record):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")
    title: str = DEFAULT_TITLE
    inferred_field: Optional[str] = Field(default=None, alias="inferredField")
    turns: List[Turn] = Field(default_factory=list)


class LegacyHistoryItem(_Record):
    """Single prompt/advice record kept for clients that predate conversations."""

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    prompt: str = ""
    advice: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    image_prompt: Optional[str] = Field(default=None, alias="imagePrompt")


def derive_title(turns: List[Turn]) -> str:
    first_user = next((t for t in turns if t.role == "user"), None)
    if first_user is None:
        return DEFAULT_TITLE
    content = first_user.content
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + "..."
    return content
