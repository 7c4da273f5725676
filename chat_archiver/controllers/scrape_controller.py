# chat_archiver/controllers/scrape_controller.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set, Tuple

from chat_archiver.config import ChannelDirectory, ResolvedChannel, Settings
from chat_archiver.errors import (
    ArchiverError,
    ConfigurationError,
    ExtractionError,
    InvalidJobStateError,
    JobNotFoundError,
    SourceAcquisitionError,
)
from chat_archiver.models import Message, ScrapeJob
from chat_archiver.schemas import RawRecord
from chat_archiver.services.message_store import MessageStore
from chat_archiver.services.normalizer import as_utc, normalize
from chat_archiver.services.sources.base import ExtractionSource, SourceRequest

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Job was cancelled while running"


@dataclass
class ScrapeRun:
    """Everything one execution of one job owns. Thrown away when the job ends."""

    job_id: int
    channel: ResolvedChannel
    scrape_type: str
    lower_bound: Optional[datetime] = None
    # (channel_id, message_id) pairs already handled in this run
    seen: Set[Tuple[str, str]] = field(default_factory=set)
    stored: int = 0
    repeated: int = 0
    iterations: int = 0
    newest: Optional[Message] = None

    def track_newest(self, message: Message):
        if self.newest is None or as_utc(message.timestamp) > as_utc(self.newest.timestamp):
            self.newest = message


class ScrapeOrchestrator:
    """
    Runs scrape jobs: pending -> running -> completed | failed.

    A job run opens one extraction source, alternates pulling a batch and
    advancing until the source runs dry, and stores each message it has not
    already handled in this run. The store ignores messages kept by earlier
    runs, and only rows actually written count towards ``messages_scraped``.
    """

    def __init__(self, store: MessageStore, directory: ChannelDirectory,
                 source_factory: Callable[[], ExtractionSource], settings: Settings):
        self.store = store
        self.directory = directory
        self.source_factory = source_factory
        self.settings = settings

    # --- Entry points ---

    async def start_job(self, channel_id: str, scrape_type: str) -> ScrapeJob:
        """Create a job for a configured channel and run it to the end."""
        resolved = self._resolve(channel_id)
        self._ensure_rows(resolved)
        job = self.store.create_job(channel_id, scrape_type)
        return await self.execute_job(job.id)

    def resume_job(self, job_id: int) -> ScrapeJob:
        """Create a new pending job that picks up where an interrupted one stopped."""
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != "interrupted":
            raise InvalidJobStateError(job_id, job.status, "resumed")
        new_job = self.store.create_job(job.channel_id, job.scrape_type, resumed_from_job_id=job.id)
        logger.info("Job %s resumes interrupted job %s", new_job.id, job.id)
        return new_job

    async def execute_job(self, job_id: int) -> ScrapeJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != "pending":
            raise InvalidJobStateError(job_id, job.status, "running")

        self.store.update_job_status(job_id, "running")
        logger.info("Job %s: %s scrape of channel %s started", job_id, job.scrape_type, job.channel_id)

        try:
            run = self._prepare_run(job)
            async with self.source_factory() as source:
                await self._open(source, run)
                await self._scrape(source, run)
            self._finish(run)
        except asyncio.CancelledError:
            # The source is already closed by the time we get here
            logger.warning("Job %s: cancelled", job_id)
            self._record_exit(job_id, "interrupted", CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.error("Job %s failed: %s", job_id, e)
            self._record_exit(job_id, "failed", str(e))
            raise

        logger.info("Job %s: completed, %d new message(s) in %d batch(es)", job_id, run.stored, run.iterations)
        return self.store.get_job(job_id)

    async def resume_and_execute(self, job_id: int) -> ScrapeJob:
        """Resume an interrupted job and run the new job straight away."""
        job = self.resume_job(job_id)
        return await self.execute_job(job.id)

    def _record_exit(self, job_id: int, status: str, error_message: str):
        # Never replaces the exception that ended the run
        try:
            self.store.update_job_status(job_id, status, error_message)
        except ArchiverError as e:
            logger.error("Job %s: could not mark %s: %s", job_id, status, e)

    # --- Steps ---

    def _resolve(self, channel_id: str) -> ResolvedChannel:
        resolved = self.directory.resolve(channel_id)
        if resolved is None:
            raise ConfigurationError(f"Channel {channel_id} not found in config")
        return resolved

    def _ensure_rows(self, resolved: ResolvedChannel):
        self.store.insert_server(resolved.server_id, resolved.server_name)
        self.store.insert_channel(resolved.channel_id, resolved.server_id, resolved.channel_name)

    def _prepare_run(self, job: ScrapeJob) -> ScrapeRun:
        resolved = self._resolve(job.channel_id)
        self._ensure_rows(resolved)

        lower_bound = None
        if job.scrape_type == "incremental":
            channel = self.store.get_channel(job.channel_id)
            lower_bound = channel.last_message_timestamp if channel else None
            if lower_bound is None:
                lower_bound = self.store.get_latest_message_timestamp(job.channel_id)

        return ScrapeRun(job_id=job.id, channel=resolved, scrape_type=job.scrape_type,
                         lower_bound=as_utc(lower_bound))

    async def _step(self, awaitable, step: str, error_cls):
        """Await one source call under the step timeout, turning failures into ``error_cls``."""
        timeout = self.settings.step_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise error_cls(f"Timed out after {timeout}s waiting for {step}") from e
        except ArchiverError:
            raise
        except Exception as e:
            raise error_cls(str(e)) from e

    async def _open(self, source: ExtractionSource, run: ScrapeRun):
        request = SourceRequest(
            server_id=run.channel.server_id,
            channel_id=run.channel.channel_id,
            scrape_type=run.scrape_type,
            lower_bound=run.lower_bound,
        )
        await self._step(source.open(request), "source to open", SourceAcquisitionError)

    async def _scrape(self, source: ExtractionSource, run: ScrapeRun):
        while True:
            run.iterations += 1
            batch = await self._step(source.next_batch(), "next batch", ExtractionError)
            self._store_batch(batch, run)
            logger.info("Job %s: batch %d had %d record(s); %d stored, %d repeated so far",
                        run.job_id, run.iterations, len(batch), run.stored, run.repeated)

            if run.iterations >= self.settings.max_iterations:
                logger.warning("Job %s: stopping after %d iterations", run.job_id, run.iterations)
                return
            if not await self._advance(source, run):
                return

    def _store_batch(self, batch: List[RawRecord], run: ScrapeRun):
        for raw in batch:
            key = (run.channel.channel_id, raw.id)
            if key in run.seen:
                run.repeated += 1
                continue
            message = normalize(raw, run.channel.channel_id, run.channel.server_id,
                                self.settings.message_url_template)
            written = self.store.insert_message(message)
            run.seen.add(key)
            run.track_newest(message)
            if written:
                self.store.increment_messages_scraped(run.job_id, 1)
                run.stored += 1

    async def _advance(self, source: ExtractionSource, run: ScrapeRun) -> bool:
        attempt = 0
        while True:
            try:
                return await self._step(source.advance(), "source to advance", ExtractionError)
            except ExtractionError as e:
                if attempt >= self.settings.advance_retries:
                    raise
                attempt += 1
                logger.warning("Job %s: advance failed (%s), retry %d/%d",
                               run.job_id, e, attempt, self.settings.advance_retries)
                await asyncio.sleep(self.settings.retry_delay_seconds)

    def _finish(self, run: ScrapeRun):
        newest = run.newest
        self.store.update_channel_after_scrape(
            run.channel.channel_id,
            newest.id if newest else None,
            newest.timestamp if newest else None,
            run.stored,
        )
        self.store.mark_server_scraped(run.channel.server_id)
        self.store.update_job_status(run.job_id, "completed")
