"""
Tests for the HarvestItem book model.
"""

from datetime import datetime, timezone

import pytest

from bookharvester.harvester.config import Environment
from bookharvester.harvester.models import (
    HarvestItem,
    LogEntry,
    LogLevel,
    LogType,
    ParseDate,
    VisibilityFlags,
    find_book_warnings,
)


def make_item(**fields) -> HarvestItem:
    row = {"objectId": "abc123", "baseUrl": "https://s3.amazonaws.com/bucket/u%40x.org/guid/Title/"}
    row.update(fields)
    item = HarvestItem.model_validate(row)
    item.mark_as_database_version()
    return item


class TestParsing:
    """Rows validate straight from the Parse REST API."""

    def test_aliases_and_identity(self):
        """Verify Parse column names map to the model."""
        item = HarvestItem.model_validate(
            {
                "objectId": "b1",
                "baseUrl": "https://x/y/z/",
                "harvestState": "Requested",
                "uploader": {"__type": "Pointer", "className": "_User", "objectId": "u9"},
                "phashOfFirstContentImage": "abcd",
                "someOtherColumn": 1,
            }
        )
        assert item.identity_key == "b1"
        assert item.owner_key == "u9"
        assert item.harvest_state == "Requested"
        assert item.phash == "abcd"

    def test_null_collections_become_empty(self):
        """Verify null list columns validate as empty lists."""
        item = HarvestItem.model_validate(
            {"tags": None, "harvestLog": None, "warnings": None, "features": None, "show": None}
        )
        assert item.tags == []
        assert item.harvest_log == []
        assert item.warnings == []
        assert item.show.root == {}

    def test_no_uploader_means_no_owner(self):
        assert HarvestItem().owner_key is None


class TestParseDate:
    def test_from_datetime_uses_millisecond_utc(self):
        """Verify dates are written the way Parse stores them."""
        value = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)
        date = ParseDate.from_datetime(value)
        assert date.model_dump(by_alias=True) == {
            "__type": "Date",
            "iso": "2024-05-06T07:08:09.123Z",
        }
        assert date.to_datetime() == value.replace(microsecond=123000)


class TestPendingUpdates:
    """Only changed writeable columns are written back."""

    def test_no_changes_no_updates(self):
        assert make_item().pending_updates() == {}

    def test_changed_field_with_update_source(self):
        """Verify a change carries updateSource."""
        item = make_item(harvestState="InProgress")
        item.harvest_state = "Done"
        updates = item.pending_updates()
        assert updates == {"harvestState": "Done", "updateSource": "bloomHarvester"}

    def test_read_only_columns_never_written(self):
        """Verify title and baseUrl changes are not written."""
        item = make_item(title="Old")
        item.title = "New"
        item.base_url = "https://elsewhere"
        assert item.pending_updates() == {}

    def test_mark_as_database_version_resets(self):
        item = make_item()
        item.phash = "ff"
        item.mark_as_database_version()
        assert item.pending_updates() == {}


class TestTags:
    """Tags are ``key:value`` strings grouped by key."""

    def test_tag_dictionary_groups_values(self):
        item = make_item(tags=["topic:Math", "level:2", "topic:Science", "bookshelf"])
        assert item.get_tag_dictionary() == {
            "topic": ["Math", "Science"],
            "level": ["2"],
            "bookshelf": [],
        }

    def test_add_tag_merges_into_key(self):
        """Verify adding keeps existing values of the key."""
        item = make_item(tags=["topic:Math"])
        item.add_tag("topic:Science")
        assert item.get_tag_dictionary()["topic"] == ["Math", "Science"]

    def test_add_tag_keeps_order(self):
        item = make_item(tags=["bookshelf:Guatemala"])
        item.add_tag("bookshelf : Comics")
        assert item.tags == ["bookshelf:Guatemala", "bookshelf:Comics"]

    def test_add_tag_new_key(self):
        item = make_item(tags=["topic:Math"])
        item.add_tag("region:Asia")
        assert item.tags == ["topic:Math", "region:Asia"]

    def test_set_tag_replaces_single_value(self):
        """Verify a key with one value has it replaced."""
        item = make_item(tags=["computedLevel:1", "topic:Math"])
        item.set_computed_level(3)
        assert item.tags == ["computedLevel:3", "topic:Math"]

    def test_set_tag_appends_to_multiple_values(self):
        """Verify a key with several values gets the new one appended."""
        item = make_item(tags=["topic:Math", "topic:Science"])
        item.set_tag("topic", "Art")
        assert item.get_tag_dictionary()["topic"] == ["Math", "Science", "Art"]

    def test_set_tag_new_key(self):
        item = make_item()
        item.set_tag("computedLevel", "2")
        assert item.tags == ["computedLevel:2"]

    def test_tag_change_is_pending(self):
        item = make_item()
        item.set_computed_level(4)
        assert item.pending_updates()["tags"] == ["computedLevel:4"]


class TestVisibility:
    """The harvester only writes its own sub-flag."""

    def test_other_sub_flags_preserved(self):
        """Verify user and librarian flags survive a harvester write."""
        item = make_item(show={"pdf": {"user": False, "librarian": True, "harvester": True}})
        item.set_harvester_evaluation("pdf", False)
        assert item.show.get("pdf") == {"user": False, "librarian": True, "harvester": False}

    def test_new_channel_entry(self):
        item = make_item()
        item.set_harvester_evaluation("epub", True)
        assert item.show.root == {"epub": {"harvester": True}}

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValueError):
            VisibilityFlags().set_harvester("holograms", True)


class TestLogEntries:
    def test_format(self):
        entry = LogEntry(LogLevel.WARN, LogType.MISSING_FONT, "Andika")
        assert str(entry) == "Warn MissingFont: Andika"

    def test_invalid_entries_skipped(self):
        """Verify unparseable harvestLog lines are ignored."""
        item = make_item(
            harvestLog=[
                "Warn MissingFont: Andika",
                "garbage",
                "",
                "Fatal MissingFont: X",
                "Error ProcessingError: boom",
            ]
        )
        entries = item.get_valid_log_entries()
        assert [e.message for e in entries] == ["Andika", "boom"]
        assert item.get_missing_fonts() == ["Andika"]

    def test_append_log_entry(self):
        item = make_item()
        item.append_log_entry(LogEntry(LogLevel.ERROR, LogType.PROCESSING_ERROR, "x"))
        assert item.harvest_log == ["Error ProcessingError: x"]
        assert "harvestLog" in item.pending_updates()


class TestPerceptualHash:
    @pytest.mark.parametrize("digest", ["null", "0x0000000000000000", ""])
    def test_no_usable_image(self, tmp_path, digest):
        """Verify null and all-zero digests are stored as None."""
        path = tmp_path / "phash.txt"
        path.write_text(digest + "\n")
        item = make_item(phashOfFirstContentImage="old")
        item.update_perceptual_hash(path)
        assert item.phash is None

    def test_digest_read(self, tmp_path):
        path = tmp_path / "phash.txt"
        path.write_text("0xC3A5F0\n")
        item = make_item()
        item.update_perceptual_hash(path)
        assert item.phash == "0xC3A5F0"


class TestFeatures:
    def test_unchanged_features_not_pending(self):
        item = make_item(features=["talkingBook", "activity"])
        item.update_metadata_if_needed(["talkingBook", "activity"])
        assert item.pending_updates() == {}

    def test_changed_features_pending(self):
        item = make_item(features=["talkingBook"])
        item.update_metadata_if_needed(["signLanguage"])
        assert item.pending_updates()["features"] == ["signLanguage"]


class TestDiagnostics:
    def test_detail_link_prod(self):
        assert (
            make_item().detail_link(Environment.PROD)
            == "https://bloomlibrary.org/browse/detail/abc123"
        )

    def test_detail_link_dev(self):
        assert (
            make_item().detail_link(Environment.DEV)
            == "https://dev.bloomlibrary.org/browse/detail/abc123"
        )

    def test_detail_link_without_id(self):
        assert make_item(objectId=None).detail_link(Environment.PROD) is None

    def test_diagnostic_info(self):
        info = make_item(title="Cat").diagnostic_info(Environment.PROD)
        assert "BookId: abc123" in info
        assert "Title: Cat" in info
        assert "https://bloomlibrary.org/browse/detail/abc123" in info

    def test_diagnostic_info_without_id(self):
        assert "URL: No URL" in make_item(objectId=None).diagnostic_info(Environment.DEV)


class TestWarnings:
    def test_missing_base_url(self):
        assert find_book_warnings(HarvestItem()) == ["Missing baseUrl"]

    def test_gmail_user(self):
        item = HarvestItem(base_url="https://s3/bucket/someone%40gmail.com/guid/T/")
        assert find_book_warnings(item) == ["Gmail user"]

    def test_no_book(self):
        assert find_book_warnings(None) == []
