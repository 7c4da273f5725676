# chat_archiver/schemas.py
from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RawRecord(BaseModel):
    """One message as an extraction source saw it, before normalization."""

    id: str
    author_id: str
    author_name: str
    author_avatar_url: Optional[str] = None
    content: Optional[str] = None
    timestamp: datetime
    reply_to_message_id: Optional[str] = None
    edited_timestamp: Optional[datetime] = None
    # Sources report flags as bools, 0/1 or strings; the normalizer coerces them
    is_pinned: Optional[Union[bool, int, str]] = None
    attachment_urls: Optional[List[str]] = None
    embed_data: Optional[Any] = None
    has_attachments: Optional[Union[bool, int, str]] = None
    has_embeds: Optional[Union[bool, int, str]] = None


# --- API payloads ---

class ScrapeStartRequest(BaseModel):
    channel_id: str
    scrape_type: Literal["full", "incremental"]


class ScrapeJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: str
    status: str
    scrape_type: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    messages_scraped: int
    error_message: Optional[str] = None
    resumed_from_job_id: Optional[int] = None


class ServerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    scraped_at: Optional[datetime] = None


class ChannelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    server_id: str
    name: str
    message_count: int
    last_message_id: Optional[str] = None
    last_message_timestamp: Optional[datetime] = None
    last_scraped: Optional[datetime] = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    channel_id: str
    author_id: str
    author_name: str
    author_avatar_url: Optional[str] = None
    content: Optional[str] = None
    timestamp: datetime
    reply_to_message_id: Optional[str] = None
    edited_timestamp: Optional[datetime] = None
    is_pinned: bool
    attachment_urls: Optional[str] = None
    embed_data: Optional[str] = None
    message_url: str
    has_attachments: bool
    has_embeds: bool


class MessageNodeOut(BaseModel):
    message: MessageOut
    replies: List["MessageNodeOut"] = Field(default_factory=list)


class ThreadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tree: MessageNodeOut
    depth: int
    message_count: int = Field(alias="messageCount")
