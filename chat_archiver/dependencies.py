# chat_archiver/dependencies.py
from functools import lru_cache

from fastapi import Depends

from chat_archiver.config import ChannelDirectory, settings
from chat_archiver.controllers.scrape_controller import ScrapeOrchestrator
from chat_archiver.controllers.thread_controller import ThreadReconstructor
from chat_archiver.database import engine
from chat_archiver.services.message_store import MessageStore
from chat_archiver.services.sources.factory import build_source


@lru_cache
def get_store() -> MessageStore:
    return MessageStore(engine)


def get_directory() -> ChannelDirectory:
    # Re-read on every request so edits to the channel file apply without a restart
    return ChannelDirectory.load(settings.channels_file)


def get_orchestrator(store: MessageStore = Depends(get_store),
                     directory: ChannelDirectory = Depends(get_directory)) -> ScrapeOrchestrator:
    return ScrapeOrchestrator(store, directory, lambda: build_source(settings), settings)


def get_thread_reconstructor(store: MessageStore = Depends(get_store)) -> ThreadReconstructor:
    return ThreadReconstructor(store)
