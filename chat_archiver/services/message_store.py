# chat_archiver/services/message_store.py
import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import desc, func, inspect, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chat_archiver.database import Base
from chat_archiver.errors import (
    ArchiverError,
    InvalidJobStateError,
    JobNotFoundError,
    StorageError,
)
from chat_archiver.models import JOB_STATUSES, SCRAPE_TYPES, Channel, Message, ScrapeJob, Server
from chat_archiver.services.normalizer import as_utc

logger = logging.getLogger(__name__)

# Where a job may go next; anything not listed is terminal
_NEXT_STATUSES = {
    "pending": {"running", "failed", "interrupted"},
    "running": {"completed", "failed", "interrupted"},
}
STALE_JOB_MESSAGE = "Process stopped while the job was running"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageStore:
    """
    Durable storage for servers, channels, messages and scrape jobs.

    Every call runs in its own transaction and is committed before it returns.
    Inserts are insert-or-ignore: a key that already exists is left untouched.
    """

    def __init__(self, engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._write_lock = threading.RLock()

    @contextmanager
    def _session(self, write: bool = False) -> Iterator[Session]:
        with self._write_lock if write else nullcontext():
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except ArchiverError:
                session.rollback()
                raise
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(str(e)) from e
            finally:
                session.close()

    def _insert_ignore(self, session: Session, model, values: dict) -> bool:
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing()
        elif dialect == "postgresql":
            stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing()
        else:
            identity = tuple(values[col.name] for col in inspect(model).primary_key)
            if session.get(model, identity) is not None:
                return False
            session.add(model(**values))
            session.flush()
            return True
        return session.execute(stmt).rowcount == 1

    # --- Schema ---

    def initialize(self):
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    def reset(self):
        try:
            Base.metadata.drop_all(bind=self.engine)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    # --- Servers ---

    def insert_server(self, server_id: str, name: str) -> bool:
        with self._session(write=True) as session:
            return self._insert_ignore(session, Server, {"id": server_id, "name": name})

    def get_server(self, server_id: str) -> Optional[Server]:
        with self._session() as session:
            return session.get(Server, server_id)

    def get_all_servers(self) -> List[Server]:
        with self._session() as session:
            return list(session.scalars(select(Server).order_by(Server.name)))

    def mark_server_scraped(self, server_id: str):
        with self._session(write=True) as session:
            session.execute(update(Server).where(Server.id == server_id).values(scraped_at=_utcnow()))

    # --- Channels ---

    def insert_channel(self, channel_id: str, server_id: str, name: str) -> bool:
        with self._session(write=True) as session:
            return self._insert_ignore(
                session, Channel,
                {"id": channel_id, "server_id": server_id, "name": name, "message_count": 0},
            )

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        with self._session() as session:
            return session.get(Channel, channel_id)

    def get_channels_by_server(self, server_id: str) -> List[Channel]:
        with self._session() as session:
            query = select(Channel).where(Channel.server_id == server_id).order_by(Channel.name)
            return list(session.scalars(query))

    def get_all_channels(self) -> List[Channel]:
        with self._session() as session:
            return list(session.scalars(select(Channel).order_by(Channel.server_id, Channel.name)))

    def update_channel_after_scrape(self, channel_id: str, last_message_id: Optional[str],
                                    last_timestamp: Optional[datetime], count: int):
        """Record a finished pass. The count only grows and the last-message marker only moves forward."""
        with self._session(write=True) as session:
            channel = session.get(Channel, channel_id)
            if channel is None:
                raise StorageError(f"Channel not found: {channel_id}")
            channel.last_scraped = _utcnow()
            channel.message_count = (channel.message_count or 0) + max(count, 0)
            current = as_utc(channel.last_message_timestamp)
            if last_timestamp is not None and (current is None or as_utc(last_timestamp) > current):
                channel.last_message_id = last_message_id
                channel.last_message_timestamp = as_utc(last_timestamp)

    # --- Messages ---

    def insert_message(self, message: Message) -> bool:
        """Store a message unless (channel_id, id) already exists. Returns True if a row was written."""
        values = {
            col.name: getattr(message, col.name)
            for col in Message.__table__.columns
            if getattr(message, col.name) is not None
        }
        with self._session(write=True) as session:
            return self._insert_ignore(session, Message, values)

    def get_message(self, message_id: str, channel_id: Optional[str] = None) -> Optional[Message]:
        with self._session() as session:
            query = select(Message).where(Message.id == message_id)
            if channel_id is not None:
                query = query.where(Message.channel_id == channel_id)
            return session.scalars(query.order_by(Message.channel_id).limit(1)).first()

    def get_messages_by_channel(self, channel_id: str, limit: int = 100, offset: int = 0) -> List[Message]:
        with self._session() as session:
            query = (
                select(Message)
                .where(Message.channel_id == channel_id)
                .order_by(desc(Message.timestamp), desc(Message.id))
                .limit(limit)
                .offset(offset)
            )
            return list(session.scalars(query))

    def get_replies(self, message_id: str) -> List[Message]:
        with self._session() as session:
            query = (
                select(Message)
                .where(Message.reply_to_message_id == message_id)
                .order_by(Message.timestamp, Message.id)
            )
            return list(session.scalars(query))

    def get_latest_message_timestamp(self, channel_id: str) -> Optional[datetime]:
        with self._session() as session:
            latest = session.scalar(select(func.max(Message.timestamp)).where(Message.channel_id == channel_id))
            return as_utc(latest)

    # --- Scrape jobs ---

    def create_job(self, channel_id: str, scrape_type: str, resumed_from_job_id: Optional[int] = None) -> ScrapeJob:
        if scrape_type not in SCRAPE_TYPES:
            raise ValueError(f"scrape_type must be one of {SCRAPE_TYPES}, got {scrape_type!r}")
        with self._session(write=True) as session:
            job = ScrapeJob(
                channel_id=channel_id,
                status="pending",
                scrape_type=scrape_type,
                started_at=_utcnow(),
                messages_scraped=0,
                resumed_from_job_id=resumed_from_job_id,
            )
            session.add(job)
            session.flush()
            return job

    def get_job(self, job_id: int) -> Optional[ScrapeJob]:
        with self._session() as session:
            return session.get(ScrapeJob, job_id)

    def get_jobs(self, status: Optional[str] = None) -> List[ScrapeJob]:
        with self._session() as session:
            query = select(ScrapeJob)
            if status:
                query = query.where(ScrapeJob.status == status)
            return list(session.scalars(query.order_by(desc(ScrapeJob.started_at), desc(ScrapeJob.id))))

    def update_job_status(self, job_id: int, status: str, error_message: Optional[str] = None) -> ScrapeJob:
        """
        Move a job to ``status``.

        ``completed_at`` is stamped when the job completes or fails. Leaving a
        terminal state, or going back to pending, raises InvalidJobStateError.
        ``messages_scraped`` is never touched here.
        """
        if status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status: {status!r}")
        with self._session(write=True) as session:
            job = session.get(ScrapeJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if status not in _NEXT_STATUSES.get(job.status, ()):
                raise InvalidJobStateError(job_id, job.status, status)
            job.status = status
            job.error_message = error_message
            if status in ("completed", "failed"):
                job.completed_at = _utcnow()

        logger.info("Job %s -> %s", job_id, status)
        return job

    def increment_messages_scraped(self, job_id: int, delta: int = 1):
        if delta < 0:
            raise ValueError("messages_scraped can only grow")
        with self._session(write=True) as session:
            result = session.execute(
                update(ScrapeJob)
                .where(ScrapeJob.id == job_id)
                .values(messages_scraped=ScrapeJob.messages_scraped + delta)
            )
            if result.rowcount == 0:
                raise JobNotFoundError(job_id)

    def mark_stale_jobs_interrupted(self) -> int:
        """Flag jobs left 'running' by a previous process so they can be resumed."""
        with self._session(write=True) as session:
            result = session.execute(
                update(ScrapeJob)
                .where(ScrapeJob.status == "running")
                .values(status="interrupted", error_message=STALE_JOB_MESSAGE)
            )
            if result.rowcount:
                logger.warning("Marked %d stale running job(s) as interrupted", result.rowcount)
            return result.rowcount
