"""Feed protocol for pluggable mention sources."""

from __future__ import annotations

from typing import Protocol

from wagerbot.models import Mention, RootPost


class FeedProtocol(Protocol):
    """
    A social feed the bot polls for mentions and replies on.
    Failures raise UpstreamRateLimited, UpstreamTransient or UpstreamPermission.
    """

    async def bot_user_id(self) -> str:
        """Account id of the bot itself (to skip its own posts)."""
        ...

    async def fetch_events_since(self, cursor: str | None) -> list[Mention]:
        """Mentions newer than cursor (all recent mentions when cursor is None)."""
        ...

    async def fetch_root(self, thread_root_id: str) -> RootPost | None:
        """The post that started the conversation, or None when it does not exist."""
        ...

    async def post_reply(self, event_id: str, text: str) -> None: ...
