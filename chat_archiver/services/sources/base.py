# chat_archiver/services/sources/base.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from chat_archiver.schemas import RawRecord
from chat_archiver.services.normalizer import as_utc


class SourceRequest(BaseModel):
    """What a source needs to know before its first batch."""

    server_id: str
    channel_id: str
    scrape_type: str = "full"
    # Incremental scrapes: records older than this are not needed
    lower_bound: Optional[datetime] = None


class ExtractionSource(ABC):
    """
    A stateful reader of one channel's history, newest first.

    Lifecycle: ``open`` once, then alternate ``next_batch`` and ``advance``
    until ``advance`` returns False, then ``close``. A source may hand back
    records it already yielded in an earlier batch; callers deduplicate.
    """

    @abstractmethod
    async def open(self, request: SourceRequest):
        ...

    @abstractmethod
    async def next_batch(self) -> List[RawRecord]:
        ...

    @abstractmethod
    async def advance(self) -> bool:
        """Move further back in history. Returns False once nothing older exists."""

    @abstractmethod
    async def close(self):
        ...

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def within_bound(record: RawRecord, lower_bound: Optional[datetime]) -> bool:
    if lower_bound is None:
        return True
    return as_utc(record.timestamp) >= as_utc(lower_bound)
