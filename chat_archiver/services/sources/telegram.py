# chat_archiver/services/sources/telegram.py
import asyncio
import logging
from typing import List, Optional

from pyrogram import Client
from pyrogram.errors import FloodWait, RPCError

from chat_archiver.errors import ExtractionError, SourceAcquisitionError
from chat_archiver.schemas import RawRecord
from chat_archiver.services.sources.base import ExtractionSource, SourceRequest, within_bound

logger = logging.getLogger(__name__)


def to_raw_record(message) -> RawRecord:
    """Convert a pyrogram Message into a RawRecord."""
    if message.from_user is not None:
        user = message.from_user
        author_id = str(user.id)
        author_name = user.username or " ".join(p for p in (user.first_name, user.last_name) if p)
    elif message.sender_chat is not None:
        author_id = str(message.sender_chat.id)
        author_name = message.sender_chat.title or ""
    else:
        author_id, author_name = "", ""

    web_page = message.web_page
    embed = None
    if web_page is not None:
        embed = {"url": web_page.url, "title": web_page.title, "description": web_page.description}

    return RawRecord(
        id=str(message.id),
        author_id=author_id,
        author_name=author_name,
        # Check for text OR caption to get text from all message types
        content=message.text or message.caption,
        timestamp=message.date,
        reply_to_message_id=str(message.reply_to_message_id) if message.reply_to_message_id else None,
        edited_timestamp=message.edit_date,
        embed_data=embed,
        has_attachments=message.media is not None and web_page is None,
        has_embeds=web_page is not None,
    )


class TelegramSource(ExtractionSource):
    """
    Reads a Telegram channel's history through an MTProto user session.

    Channel ids in the directory are channel usernames or numeric chat ids.
    Pair this source with a ``https://t.me/{channel_id}/{message_id}`` message
    URL template.
    """

    def __init__(self, api_id: int, api_hash: str, session_name: str = "chat_archiver_session",
                 page_size: int = 100, page_delay_seconds: float = 0.1, max_flood_waits: int = 3,
                 client: Optional[Client] = None):
        self.session_name = session_name
        self.page_size = page_size
        self.page_delay_seconds = page_delay_seconds
        self.max_flood_waits = max_flood_waits
        self.client = client or Client(name=session_name, api_id=api_id, api_hash=api_hash)
        self._request: Optional[SourceRequest] = None
        self._page: Optional[list] = None
        self._offset_id = 0

    async def open(self, request: SourceRequest):
        self._request = request
        self._page = None
        self._offset_id = 0
        try:
            await self.client.start()
            # Fetching dialogs populates the peer cache so the channel can be resolved
            logger.info("Initializing channel cache by getting dialogs...")
            async for _ in self.client.get_dialogs(limit=200):
                pass
            await self.client.get_chat(request.channel_id)
        except (RPCError, ConnectionError, KeyError, ValueError) as e:
            raise SourceAcquisitionError(f"Could not open Telegram channel {request.channel_id}: {e}") from e
        return self

    async def _fetch_page(self) -> list:
        waits = 0
        while True:
            try:
                return [
                    message
                    async for message in self.client.get_chat_history(
                        self._request.channel_id, limit=self.page_size, offset_id=self._offset_id
                    )
                ]
            except FloodWait as e:
                if waits >= self.max_flood_waits:
                    raise ExtractionError(f"Still rate limited after {waits} waits") from e
                waits += 1
                logger.warning("Rate limited: waiting %s seconds (%d/%d)", e.value, waits, self.max_flood_waits)
                await asyncio.sleep(e.value)
            except RPCError as e:
                raise ExtractionError(f"Telegram history request failed: {e}") from e

    async def next_batch(self) -> List[RawRecord]:
        if self._page is None:
            self._page = await self._fetch_page()
        records = [to_raw_record(m) for m in self._page]
        return [r for r in records if within_bound(r, self._request.lower_bound)]

    async def advance(self) -> bool:
        page = self._page or []
        if len(page) < self.page_size:
            return False
        oldest = to_raw_record(page[-1])
        if not within_bound(oldest, self._request.lower_bound):
            return False

        self._offset_id = page[-1].id
        await asyncio.sleep(self.page_delay_seconds)
        self._page = await self._fetch_page()
        return bool(self._page)

    async def close(self):
        if self.client and self.client.is_connected:
            await self.client.stop()
