# chat_archiver/services/sources/discord_api.py
import asyncio
import logging
from typing import List, Optional

import httpx

from chat_archiver.errors import ExtractionError, SourceAcquisitionError
from chat_archiver.schemas import RawRecord
from chat_archiver.services.normalizer import as_utc
from chat_archiver.services.sources.base import ExtractionSource, SourceRequest, within_bound

logger = logging.getLogger(__name__)

AVATAR_URL = "https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"
# Message type for a reply; forwards and crossposts also carry a message_reference
REPLY_MESSAGE_TYPE = 19


def to_raw_record(payload: dict) -> RawRecord:
    """Convert a Discord REST message object into a RawRecord."""
    author = payload.get("author") or {}
    avatar = author.get("avatar")
    referenced = payload.get("referenced_message") or {}
    reference = payload.get("message_reference") or {}
    reply_to = referenced.get("id")
    if reply_to is None and payload.get("type") == REPLY_MESSAGE_TYPE:
        reply_to = reference.get("message_id")
    attachments = payload.get("attachments") or []
    embeds = payload.get("embeds") or []

    return RawRecord(
        id=str(payload["id"]),
        author_id=str(author.get("id", "")),
        author_name=author.get("username", ""),
        author_avatar_url=AVATAR_URL.format(user_id=author["id"], avatar=avatar) if avatar else None,
        content=payload.get("content") or None,
        timestamp=payload["timestamp"],
        reply_to_message_id=reply_to,
        edited_timestamp=payload.get("edited_timestamp"),
        is_pinned=payload.get("pinned", False),
        attachment_urls=[a["url"] for a in attachments] or None,
        embed_data=embeds or None,
        has_attachments=bool(attachments),
        has_embeds=bool(embeds),
    )


class DiscordAPISource(ExtractionSource):
    """Pages backwards through a channel with the Discord REST API and a bot token."""

    def __init__(self, bot_token: str, api_base: str = "https://discord.com/api/v10",
                 page_size: int = 100, page_delay_seconds: float = 0.1,
                 max_rate_limit_waits: int = 5, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = bot_token
        self.api_base = api_base
        # Discord caps a page at 100 messages
        self.page_size = max(1, min(page_size, 100))
        self.page_delay_seconds = page_delay_seconds
        self.max_rate_limit_waits = max_rate_limit_waits
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request: Optional[SourceRequest] = None
        self._page: Optional[List[dict]] = None
        self._before: Optional[str] = None

    async def open(self, request: SourceRequest):
        if not self.bot_token:
            raise SourceAcquisitionError("No Discord bot token configured")
        self._request = request
        self._page = None
        self._before = None
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            headers={"Authorization": f"Bot {self.bot_token}", "Content-Type": "application/json"},
            transport=self._transport,
        )
        try:
            response = await self._client.get(f"/channels/{request.channel_id}")
        except httpx.HTTPError as e:
            raise SourceAcquisitionError(f"Could not reach Discord API: {e}") from e
        if response.status_code != 200:
            raise SourceAcquisitionError(f"Discord API error: {response.status_code} - {response.text}")
        logger.info("Opened Discord channel %s", request.channel_id)
        return self

    async def _fetch_page(self) -> List[dict]:
        params = {"limit": self.page_size}
        if self._before:
            params["before"] = self._before

        waits = 0
        while True:
            try:
                response = await self._client.get(f"/channels/{self._request.channel_id}/messages", params=params)
            except httpx.HTTPError as e:
                raise ExtractionError(f"Discord API request failed: {e}") from e

            if response.status_code == 429 and waits < self.max_rate_limit_waits:
                retry_after = float(response.headers.get("Retry-After") or response.json().get("retry_after", 1))
                waits += 1
                logger.warning("Rate limited: waiting %.2f seconds (%d/%d)", retry_after, waits,
                               self.max_rate_limit_waits)
                await asyncio.sleep(retry_after)
                continue
            if response.status_code != 200:
                raise ExtractionError(f"Discord API error: {response.status_code} - {response.text}")
            return response.json()

    async def next_batch(self) -> List[RawRecord]:
        if self._page is None:
            self._page = await self._fetch_page()
        records = [to_raw_record(payload) for payload in self._page]
        return [r for r in records if within_bound(r, self._request.lower_bound)]

    async def advance(self) -> bool:
        page = self._page or []
        if len(page) < self.page_size:
            return False

        oldest = to_raw_record(page[-1])
        if not within_bound(oldest, self._request.lower_bound):
            logger.info("Reached lower bound %s", as_utc(self._request.lower_bound))
            return False

        self._before = oldest.id
        await asyncio.sleep(self.page_delay_seconds)
        self._page = await self._fetch_page()
        return bool(self._page)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
