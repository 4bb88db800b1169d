"""X (Twitter) API v2 client - mentions timeline, root post lookup, replies."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

import httpx
import structlog

from wagerbot.errors import UpstreamPermission, UpstreamRateLimited, UpstreamTransient
from wagerbot.models import Mention, RootPost

log = structlog.get_logger(__name__)

TWEET_FIELDS = "conversation_id,author_id,created_at"
MAX_REPLY_CHARS = 280


def _parse_created_at(value: str | None) -> int:
    """ISO-8601 (e.g. 2025-01-01T12:00:00.000Z) -> ms epoch. Missing -> 0."""
    if not value:
        return 0
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)


def parse_mention(raw: dict[str, Any]) -> Mention:
    """Convert an API v2 tweet object to a Mention."""
    return Mention(
        id=str(raw["id"]),
        author_id=str(raw.get("author_id") or ""),
        text=raw.get("text") or "",
        created_at=_parse_created_at(raw.get("created_at")),
        thread_root_id=str(raw["conversation_id"]) if raw.get("conversation_id") else None,
    )


def _retry_after(resp: httpx.Response) -> float | None:
    reset = resp.headers.get("x-rate-limit-reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            return None
    retry = resp.headers.get("retry-after")
    try:
        return float(retry) if retry else None
    except ValueError:
        return None


class TwitterFeed:
    """Async feed over the v2 API with a user-context bearer token."""

    def __init__(
        self,
        access_token: str,
        api_base: str = "https://api.twitter.com",
        timeout: float = 30.0,
        max_results: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_results = max(5, min(max_results, 100))
        self._client = httpx.AsyncClient(
            base_url=api_base.rstrip("/"),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )
        self._user_id: str | None = None

    async def __aenter__(self) -> TwitterFeed:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamTransient(f"timeout on {path}", path=path) from e
        except httpx.TransportError as e:
            raise UpstreamTransient(f"network error on {path}: {e}", path=path) from e
        if resp.status_code == 429:
            raise UpstreamRateLimited(f"rate limited on {path}", retry_after=_retry_after(resp), path=path)
        if resp.status_code in (401, 403):
            raise UpstreamPermission(f"{resp.status_code} on {path}", status=resp.status_code, path=path)
        return resp

    async def bot_user_id(self) -> str:
        if self._user_id is None:
            resp = await self._request("GET", "/2/users/me")
            if resp.status_code >= 400:
                raise UpstreamTransient(f"users/me failed: {resp.status_code}", status=resp.status_code)
            self._user_id = str(resp.json()["data"]["id"])
            log.info("twitter_connected", user_id=self._user_id)
        return self._user_id

    async def fetch_events_since(self, cursor: str | None) -> list[Mention]:
        user_id = await self.bot_user_id()
        params: dict[str, Any] = {"max_results": self.max_results, "tweet.fields": TWEET_FIELDS}
        if cursor:
            params["since_id"] = cursor
        resp = await self._request("GET", f"/2/users/{user_id}/mentions", params=params)
        if resp.status_code >= 400:
            raise UpstreamTransient(f"mentions failed: {resp.status_code}", status=resp.status_code)
        data = resp.json().get("data") or []
        mentions = []
        for raw in data:
            try:
                mentions.append(parse_mention(raw))
            except (KeyError, ValueError) as e:
                log.warning("skip_mention", raw_id=raw.get("id"), error=str(e))
        return mentions

    async def fetch_root(self, thread_root_id: str) -> RootPost | None:
        resp = await self._request(
            "GET", f"/2/tweets/{thread_root_id}", params={"tweet.fields": "author_id,conversation_id"}
        )
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise UpstreamTransient(f"tweet lookup failed: {resp.status_code}", status=resp.status_code)
        data = resp.json().get("data")
        if not data:
            return None
        return RootPost(id=str(data["id"]), text=data.get("text") or "", author_id=data.get("author_id"))

    async def post_reply(self, event_id: str, text: str) -> None:
        body = {"text": text[:MAX_REPLY_CHARS], "reply": {"in_reply_to_tweet_id": event_id}}
        resp = await self._request("POST", "/2/tweets", json=body)
        if resp.status_code >= 400:
            raise UpstreamTransient(f"reply failed: {resp.status_code}", status=resp.status_code, event_id=event_id)
        log.info("reply_posted", event_id=event_id)
