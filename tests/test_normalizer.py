"""Tests for mapping raw extraction records onto stored messages."""

import json
from datetime import datetime, timezone

from chat_archiver.schemas import RawRecord
from chat_archiver.services.normalizer import build_message_url, normalize, normalize_batch

from conftest import BASE_TIME, raw


class TestNormalize:
    def test_basic_fields(self):
        msg = normalize(raw("42", content="hello", reply_to="41"), "100", "900")

        assert msg.id == "42"
        assert msg.channel_id == "100"
        assert msg.author_id == "u1"
        assert msg.author_name == "alice"
        assert msg.content == "hello"
        assert msg.timestamp == BASE_TIME
        assert msg.reply_to_message_id == "41"

    def test_message_url_is_derived_from_ids(self):
        msg = normalize(raw("42"), "100", "900")
        assert msg.message_url == "https://discord.com/channels/900/100/42"

    def test_custom_url_template(self):
        msg = normalize(raw("42"), "durov", "tg", url_template="https://t.me/{channel_id}/{message_id}")
        assert msg.message_url == "https://t.me/durov/42"
        assert build_message_url("s", "c", "m", "{server_id}-{channel_id}-{message_id}") == "s-c-m"

    def test_missing_optionals_are_none_not_empty(self):
        record = RawRecord(id="1", author_id="u", author_name="n", timestamp="2024-03-01T12:00:00Z",
                           content="", author_avatar_url="")
        msg = normalize(record, "100", "900")

        assert msg.content is None
        assert msg.author_avatar_url is None
        assert msg.reply_to_message_id is None
        assert msg.edited_timestamp is None
        assert msg.attachment_urls is None
        assert msg.embed_data is None

    def test_attachments_and_embeds_serialized_when_present(self):
        urls = ["https://cdn.example/a.png", "https://cdn.example/b.png"]
        embeds = [{"title": "Link", "url": "https://example.com"}]
        msg = normalize(raw("1", attachment_urls=urls, embed_data=embeds,
                            has_attachments=True, has_embeds=True), "100", "900")

        assert json.loads(msg.attachment_urls) == urls
        assert json.loads(msg.embed_data) == embeds
        assert msg.has_attachments is True
        assert msg.has_embeds is True

    def test_flags_coerced_to_bool(self):
        from_ints = normalize(raw("1", is_pinned=1, has_attachments=0, has_embeds=1), "100", "900")
        assert from_ints.is_pinned is True
        assert from_ints.has_attachments is False
        assert from_ints.has_embeds is True

        from_strings = normalize(raw("2", is_pinned="true", has_attachments="0"), "100", "900")
        assert from_strings.is_pinned is True
        assert from_strings.has_attachments is False

        absent = normalize(raw("3", has_attachments=None, has_embeds=None), "100", "900")
        assert absent.is_pinned is False
        assert absent.has_attachments is False
        assert absent.has_embeds is False

    def test_iso_timestamps_parsed_and_naive_taken_as_utc(self):
        record = RawRecord(id="1", author_id="u", author_name="n",
                           timestamp="2024-03-01T14:00:00+02:00",
                           edited_timestamp=datetime(2024, 3, 1, 13, 0))
        msg = normalize(record, "100", "900")

        assert msg.timestamp == BASE_TIME
        assert msg.timestamp.tzinfo == timezone.utc
        assert msg.edited_timestamp == datetime(2024, 3, 1, 13, 0, tzinfo=timezone.utc)

    def test_mapping_is_repeatable(self):
        record = raw("7", attachment_urls=["https://cdn.example/x"], embed_data={"b": 1, "a": 2})
        first = normalize(record, "100", "900")
        second = normalize(record, "100", "900")

        columns = [c.name for c in first.__table__.columns]
        assert [getattr(first, c) for c in columns] == [getattr(second, c) for c in columns]

    def test_normalize_batch(self):
        messages = normalize_batch([raw("1"), raw("2", 1)], "100", "900")
        assert [m.id for m in messages] == ["1", "2"]
