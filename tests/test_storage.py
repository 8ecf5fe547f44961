# Copyright (C) 2021 The Profilekeep Contributors
#
# This file is part of Profilekeep.
#
# Profilekeep is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Profilekeep is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with Profilekeep.  If not, see <http://www.gnu.org/licenses/>.

from datetime import date, datetime

import pytest
from profilekeep import ProfileKeep
from profilekeep.usrsys.storage import ProfileRecordAdapter
from profilekeep.utils.asec import CredentialRecord
from profilekeep.utils.storage import (
    DuplicateRecordError,
    RecordNotFoundError,
    RecordValidationError,
    UnQLiteStorage,
)
from unqlite import UnQLite

from .utils import VALID_PASSWORD, keeper, new_profile_record


@pytest.fixture
async def common_storage():
    database = UnQLite(":mem:")
    try:
        yield UnQLiteStorage(database, "things")
    finally:
        database.close()


class TestUnQLiteStorage:
    def test_doc_match_requires_every_key(self):
        doc = {"email": "a@b.com", "token": "t1"}
        assert UnQLiteStorage.doc_match(doc, {"email": "a@b.com"})
        assert UnQLiteStorage.doc_match(doc, {"email": "a@b.com", "token": "t1"})
        assert not UnQLiteStorage.doc_match(doc, {"email": "a@b.com", "token": "t2"})
        assert not UnQLiteStorage.doc_match(doc, {"other": "a@b.com"})

    @pytest.mark.asyncio
    async def test_store_and_find(self, common_storage: UnQLiteStorage):
        await common_storage.store({"name": "alyx", "n": 1})
        await common_storage.store({"name": "freeman", "n": 2})
        found = [doc async for doc in common_storage.find({"name": "freeman"})]
        assert len(found) == 1
        assert found[0]["n"] == 2
        assert await common_storage.find_one({"name": "nobody"}) is None

    @pytest.mark.asyncio
    async def test_update_one(self, common_storage: UnQLiteStorage):
        await common_storage.store({"name": "alyx", "n": 1})
        assert await common_storage.update_one({"name": "alyx"}, {"name": "alyx", "n": 5})
        doc = await common_storage.find_one({"name": "alyx"})
        assert doc and doc["n"] == 5
        assert await common_storage.update_one({"name": "nobody"}, {"n": 0}) is None

    @pytest.mark.asyncio
    async def test_remove(self, common_storage: UnQLiteStorage):
        for n in range(3):
            await common_storage.store({"name": "alyx", "n": n})
        assert await common_storage.remove_one({"name": "alyx"})
        assert await common_storage.remove({"name": "alyx"}) == 2
        assert not await common_storage.remove_one({"name": "alyx"})


class TestProfileRecordAdapter:
    def test_dates_round_trip_as_strings(self):
        adapter = ProfileRecordAdapter()
        record = new_profile_record("a@b.com")
        record.created_at = datetime(2018, 1, 1, 12, 30)
        d = adapter.record2dict(record)
        assert d["birthday"] == "2000-01-01"
        assert d["created_at"] == "2018-01-01T12:30:00"
        restored = adapter.dict2record(d)
        assert restored.birthday == date(2000, 1, 1)
        assert restored.created_at == datetime(2018, 1, 1, 12, 30)

    def test_index_keyed_token_lists_are_restored(self):
        adapter = ProfileRecordAdapter()
        d = adapter.record2dict(new_profile_record("a@b.com"))
        d["blacklisted_tokens"] = {"0": "t1", "1": "t2"}
        assert adapter.dict2record(d).blacklisted_tokens == ["t1", "t2"]


class TestProfileRecordStorage:
    @pytest.mark.asyncio
    async def test_insert_keeps_profile_invariants(self, keeper: ProfileKeep):
        storage = keeper.storage_hub.profile_records
        record = new_profile_record("a@b.com")
        record.is_email_confirmed = True
        record.blacklisted_tokens = ["stale"]
        stored = await storage.insert(record)
        assert stored.created_at and stored.modified_at
        assert stored.blacklisted_tokens == []
        assert not stored.is_email_confirmed
        assert stored.email_confirmation_token
        assert stored.password != VALID_PASSWORD
        CredentialRecord.from_string(stored.password)
        # the record given is left as is
        assert record.password == VALID_PASSWORD
        assert record.is_email_confirmed
        found = await storage.find_by_id(record.identity)
        assert found == stored
        assert await storage.check_password("a@b.com", VALID_PASSWORD)
        assert not await storage.check_password("a@b.com", "bladiblah")
        assert not await storage.check_password("nobody@b.com", VALID_PASSWORD)

    @pytest.mark.asyncio
    async def test_insert_rejects_duplicate_email(self, keeper: ProfileKeep):
        storage = keeper.storage_hub.profile_records
        await storage.insert(new_profile_record("a@b.com"))
        with pytest.raises(DuplicateRecordError) as excinfo:
            await storage.insert(new_profile_record("a@b.com"))
        assert excinfo.value.field == "email"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field, value", [("email", None), ("password", None), ("full_name", ""), ("birthday", None)]
    )
    async def test_insert_rejects_missing_required(
        self, keeper: ProfileKeep, field: str, value
    ):
        record = new_profile_record("a@b.com")
        setattr(record, field, value)
        with pytest.raises(RecordValidationError) as excinfo:
            await keeper.storage_hub.profile_records.insert(record)
        assert excinfo.value.missing == [field]

    @pytest.mark.asyncio
    async def test_insert_rejects_invalid_email(self, keeper: ProfileKeep):
        with pytest.raises(RecordValidationError) as excinfo:
            await keeper.storage_hub.profile_records.insert(
                new_profile_record("not-email-addr@...")
            )
        assert excinfo.value.invalid == ["email"]

    @pytest.mark.asyncio
    async def test_save_keeps_created_at(self, keeper: ProfileKeep):
        storage = keeper.storage_hub.profile_records
        stored = await storage.insert(new_profile_record("a@b.com"))
        stored.created_at = datetime(1999, 1, 1)
        saved = await storage.save(stored)
        found = await storage.find_by_id(stored.identity)
        assert found and found.created_at == saved.created_at != datetime(1999, 1, 1)
        assert found.modified_at >= found.created_at

    @pytest.mark.asyncio
    async def test_save_encodes_changed_password_only(self, keeper: ProfileKeep):
        storage = keeper.storage_hub.profile_records
        stored = await storage.insert(new_profile_record("a@b.com"))
        stored.full_name = "Renamed"
        saved = await storage.save(stored)
        assert saved.password == stored.password
        stored.password = "n3w-P@ssw0rd"
        saved = await storage.save(stored)
        assert saved.password != "n3w-P@ssw0rd"
        assert await storage.check_password("a@b.com", "n3w-P@ssw0rd")

    @pytest.mark.asyncio
    async def test_save_of_changed_email_needs_confirming_again(
        self, keeper: ProfileKeep
    ):
        storage = keeper.storage_hub.profile_records
        stored = await storage.insert(new_profile_record("a@b.com"))
        stored.is_email_confirmed = True
        confirmed = await storage.save(stored)
        assert confirmed.is_email_confirmed
        assert confirmed.email_confirmation_token == stored.email_confirmation_token
        confirmed.email = "c@d.com"
        moved = await storage.save(confirmed)
        assert not moved.is_email_confirmed
        assert moved.email_confirmation_token != stored.email_confirmation_token

    @pytest.mark.asyncio
    async def test_save_rejects_duplicate_email_without_writing(
        self, keeper: ProfileKeep
    ):
        storage = keeper.storage_hub.profile_records
        await storage.insert(new_profile_record("a@b.com"))
        second = await storage.insert(new_profile_record("c@d.com"))
        second.email = "a@b.com"
        second.full_name = "Changed"
        with pytest.raises(DuplicateRecordError):
            await storage.save(second)
        found = await storage.find_by_id(second.identity)
        assert found and found.email == "c@d.com" and found.full_name == "That Person"

    @pytest.mark.asyncio
    async def test_save_of_unknown_profile(self, keeper: ProfileKeep):
        with pytest.raises(RecordNotFoundError):
            await keeper.storage_hub.profile_records.save(new_profile_record("a@b.com"))
