# chat_archiver/models.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base

JOB_STATUSES = ("pending", "running", "completed", "failed", "interrupted")
SCRAPE_TYPES = ("full", "incremental")


class Server(Base):
    __tablename__ = "servers"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    scraped_at = Column(DateTime(timezone=True))


class Channel(Base):
    __tablename__ = "channels"
    id = Column(String, primary_key=True)
    server_id = Column(String, ForeignKey("servers.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    message_count = Column(Integer, nullable=False, default=0)
    last_message_id = Column(String)
    last_message_timestamp = Column(DateTime(timezone=True))
    last_scraped = Column(DateTime(timezone=True))


class Message(Base):
    __tablename__ = "messages"
    # The same message id may show up in two channels, so the key is the pair
    channel_id = Column(String, ForeignKey("channels.id"), primary_key=True)
    id = Column(String, primary_key=True)
    author_id = Column(String, nullable=False)
    author_name = Column(String, nullable=False)
    author_avatar_url = Column(String)
    content = Column(Text)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    reply_to_message_id = Column(String, index=True)
    edited_timestamp = Column(DateTime(timezone=True))
    is_pinned = Column(Boolean, nullable=False, default=False)
    attachment_urls = Column(Text)
    embed_data = Column(Text)
    message_url = Column(String, nullable=False)
    has_attachments = Column(Boolean, nullable=False, default=False)
    has_embeds = Column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_messages_channel_timestamp", "channel_id", "timestamp"),)

    def __repr__(self):
        return f"<Message {self.channel_id}/{self.id}>"


class ScrapeJob(Base):
    __tablename__ = "scrape_jobs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String, ForeignKey("channels.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    scrape_type = Column(String, nullable=False)
    started_at = Column(DateTime(timezone=True), default=func.now())
    completed_at = Column(DateTime(timezone=True))
    messages_scraped = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    resumed_from_job_id = Column(Integer, ForeignKey("scrape_jobs.id"))
