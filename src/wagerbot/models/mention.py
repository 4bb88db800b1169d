"""Mention, RootPost - canonical feed entities."""

from __future__ import annotations

from pydantic import BaseModel


class Mention(BaseModel):
    """A post that mentions the bot."""

    id: str
    author_id: str
    text: str
    created_at: int  # ms epoch
    thread_root_id: str | None = None  # conversation id

    @property
    def market_id(self) -> str:
        """Markets are keyed by the conversation the mention belongs to."""
        return self.thread_root_id or self.id


class RootPost(BaseModel):
    """The post that started a conversation (the prediction)."""

    id: str
    text: str
    author_id: str | None = None
