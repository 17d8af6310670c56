"""Tests for keeperlog.profile."""

from __future__ import annotations

from pathlib import Path

import pytest

from keeperlog.errors import InvalidFormatError, StorageUnavailableError
from keeperlog.profile import ProfileStore


class TestProfileStore:
    def test_missing_file_is_empty(self, profile_store: ProfileStore):
        assert profile_store.load() == {}

    def test_save_and_load(self, profile_store: ProfileStore):
        profile_store.save({"name": "Alex", "reflectionLength": "short"})
        assert profile_store.load() == {"name": "Alex", "reflectionLength": "short"}

    def test_update_merges(self, profile_store: ProfileStore):
        profile_store.save({"name": "Alex"})
        assert profile_store.update(qualification="ACM30122") == {
            "name": "Alex",
            "qualification": "ACM30122",
        }

    def test_update_validates_reflection_length(self, profile_store: ProfileStore):
        with pytest.raises(ValueError):
            profile_store.update(reflectionLength="epic")

    def test_corrupt_json(self, profile_store: ProfileStore):
        profile_store.path.write_text("{broken")
        with pytest.raises(InvalidFormatError):
            profile_store.load()

    def test_not_an_object(self, profile_store: ProfileStore):
        profile_store.path.write_text("[1, 2]")
        with pytest.raises(InvalidFormatError):
            profile_store.load()

    def test_save_rejects_non_dict(self, profile_store: ProfileStore):
        with pytest.raises(InvalidFormatError):
            profile_store.save(["x"])

    def test_unwritable_location(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = ProfileStore(blocker / "profile.json")
        with pytest.raises(StorageUnavailableError):
            store.save({"name": "Alex"})

    def test_no_temp_files_left(self, profile_store: ProfileStore):
        profile_store.save({"name": "Alex"})
        leftovers = [p for p in profile_store.path.parent.iterdir() if p.name.startswith(".profile-")]
        assert leftovers == []
