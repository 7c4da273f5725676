# chat_archiver/services/normalizer.py
import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from chat_archiver.config import settings
from chat_archiver.models import Message
from chat_archiver.schemas import RawRecord

_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}


def _as_bool(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_message_url(server_id: str, channel_id: str, message_id: str, url_template: Optional[str] = None) -> str:
    template = url_template or settings.message_url_template
    return template.format(server_id=server_id, channel_id=channel_id, message_id=message_id)


def normalize(raw: RawRecord, channel_id: str, server_id: str, url_template: Optional[str] = None) -> Message:
    """
    Map a raw extraction record onto the stored message shape.

    Args:
        raw: The record as the source produced it
        channel_id: Channel the record was read from
        server_id: Server that owns the channel, used for the message link
        url_template: Overrides the configured message link format

    Returns:
        A transient Message, not attached to any session
    """
    attachment_urls = json.dumps(raw.attachment_urls) if raw.attachment_urls is not None else None
    embed_data = json.dumps(raw.embed_data, sort_keys=True) if raw.embed_data is not None else None

    return Message(
        id=raw.id,
        channel_id=channel_id,
        author_id=raw.author_id,
        author_name=raw.author_name,
        author_avatar_url=raw.author_avatar_url or None,
        content=raw.content or None,
        timestamp=as_utc(raw.timestamp),
        reply_to_message_id=raw.reply_to_message_id or None,
        edited_timestamp=as_utc(raw.edited_timestamp),
        is_pinned=_as_bool(raw.is_pinned),
        attachment_urls=attachment_urls,
        embed_data=embed_data,
        message_url=build_message_url(server_id, channel_id, raw.id, url_template),
        has_attachments=_as_bool(raw.has_attachments),
        has_embeds=_as_bool(raw.has_embeds),
    )


def normalize_batch(records: Iterable[RawRecord], channel_id: str, server_id: str,
                    url_template: Optional[str] = None) -> List[Message]:
    return [normalize(raw, channel_id, server_id, url_template) for raw in records]
