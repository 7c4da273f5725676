# chat_archiver/services/sources/factory.py
from chat_archiver.config import Settings
from chat_archiver.services.sources.base import ExtractionSource


def build_source(settings: Settings) -> ExtractionSource:
    """Create a fresh, unopened source for the configured backend."""
    if settings.source_backend == "telegram":
        from chat_archiver.services.sources.telegram import TelegramSource

        return TelegramSource(
            api_id=settings.api_id,
            api_hash=settings.api_hash,
            session_name=settings.telegram_session_name,
            page_size=settings.messages_per_batch,
            page_delay_seconds=settings.page_delay_seconds,
        )

    from chat_archiver.services.sources.discord_api import DiscordAPISource

    return DiscordAPISource(
        bot_token=settings.discord_bot_token,
        api_base=settings.discord_api_base,
        page_size=settings.messages_per_batch,
        page_delay_seconds=settings.page_delay_seconds,
    )
