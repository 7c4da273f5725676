# chat_archiver/config.py
import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError, model_validator
from pydantic_settings import BaseSettings

from chat_archiver.errors import ConfigurationError


class Settings(BaseSettings):
    db_type: str = "sqlite"
    db_username: str = ""
    db_password: str = ""
    db_host: str = ""
    db_name: str = "chat-archive.db"

    channels_file: str = "channels.yaml"
    log_level: str = "INFO"

    # Which extraction source backs a scrape
    source_backend: Literal["discord_api", "telegram"] = "discord_api"
    discord_bot_token: str = ""
    discord_api_base: str = "https://discord.com/api/v10"
    api_id: int = 0
    api_hash: str = ""
    telegram_session_name: str = "chat_archiver_session"

    # Scrape loop tuning
    messages_per_batch: int = 100
    page_delay_seconds: float = 0.1
    step_timeout_seconds: float = 30.0
    max_iterations: int = 10000
    advance_retries: int = 3
    retry_delay_seconds: float = 2.0

    message_url_template: str = "https://discord.com/channels/{server_id}/{channel_id}/{message_id}"

    @property
    def database_url(self) -> str:
        if self.db_type.startswith("sqlite"):
            return f"{self.db_type}:///{self.db_name}"
        return f"{self.db_type}://{self.db_username}:{self.db_password}@{self.db_host}/{self.db_name}"

    class Config:
        env_file = ".env"


settings = Settings()


# --- Channel directory (which channels may be scraped, and where they live) ---

class ChannelEntry(BaseModel):
    id: str
    name: str


class ServerEntry(BaseModel):
    id: str
    name: str
    channels: List[ChannelEntry]


class ResolvedChannel(BaseModel):
    server_id: str
    server_name: str
    channel_id: str
    channel_name: str


class ChannelDirectory(BaseModel):
    servers: List[ServerEntry]

    @model_validator(mode="after")
    def _check_unique_ids(self):
        server_ids = set()
        channel_ids = set()
        for server in self.servers:
            if server.id in server_ids:
                raise ValueError(f"Duplicate server ID: {server.id}")
            server_ids.add(server.id)
            for channel in server.channels:
                if channel.id in channel_ids:
                    raise ValueError(f"Duplicate channel ID: {channel.id}")
                channel_ids.add(channel.id)
        return self

    def resolve(self, channel_id: str) -> Optional[ResolvedChannel]:
        """Look up the server that owns ``channel_id``; None if it is not configured."""
        for server in self.servers:
            for channel in server.channels:
                if channel.id == channel_id:
                    return ResolvedChannel(
                        server_id=server.id,
                        server_name=server.name,
                        channel_id=channel.id,
                        channel_name=channel.name,
                    )
        return None

    @classmethod
    def from_mapping(cls, data) -> "ChannelDirectory":
        if not isinstance(data, dict):
            raise ConfigurationError("Channel config must be a mapping with a 'servers' list")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid channel config: {e}") from e

    @classmethod
    def load(cls, path: str) -> "ChannelDirectory":
        if not os.path.exists(path):
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Could not parse {path}: {e}") from e
        return cls.from_mapping(data)
