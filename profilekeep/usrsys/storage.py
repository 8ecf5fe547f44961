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
"""This module contains all storage classes for the user system.
"""
import asyncio
import logging
from copy import deepcopy
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from ..utils.asec import PasswordCredentialCodec, new_random_token
from ..utils.storage import (
    CommonStorage,
    CommonStorageRecordWrapper,
    DataclassCommonStorageAdapter,
    DuplicateRecordError,
    RecordNotFoundError,
    RecordValidationError,
)
from .addr import EmailAddressValidator
from .tk import DEFAULT_TOKEN_LIFETIME_SECONDS, TokenRecord
from .usr import PROFILE_REQUIRED_FIELDS, ProfileRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileRecordAdapter(DataclassCommonStorageAdapter[ProfileRecord]):
    """A `DataclassCommonStorageAdapter` for `ProfileRecord`, storing dates as ISO 8601 strings."""

    def __init__(self) -> None:
        super().__init__(ProfileRecord)

    def record2dict(self, record: ProfileRecord) -> Dict[str, Any]:
        d = super().record2dict(record)
        for k in ("birthday", "created_at", "modified_at"):
            if isinstance(d[k], (date, datetime)):
                d[k] = d[k].isoformat()
        return d

    def dict2record(self, d: Dict[str, Any]) -> ProfileRecord:
        record = super().dict2record(d)
        if isinstance(record.birthday, str):
            record.birthday = datetime.fromisoformat(record.birthday).date()
        if isinstance(record.created_at, str):
            record.created_at = datetime.fromisoformat(record.created_at)
        if isinstance(record.modified_at, str):
            record.modified_at = datetime.fromisoformat(record.modified_at)
        tokens = record.blacklisted_tokens
        if isinstance(tokens, dict):
            # unqlite may hand JSON arrays back as index-keyed objects
            tokens = list(tokens.values())
        record.blacklisted_tokens = list(tokens) if tokens else []
        return record


class ProfileRecordStorage(CommonStorageRecordWrapper[ProfileRecord]):
    """
    A `profilekeep.utils.storage.RecordStorage` for `profilekeep.usrsys.usr.ProfileRecord`.

    Use `insert` and `save` to write profiles, they keep the invariants of a profile:

    - required fields must have a value and the e-mail address must be valid (`RecordValidationError`);
    - the e-mail address is unique (`DuplicateRecordError`);
    - the password is stored as a credential record, re-encoded with a fresh salt when it changes;
    - a new e-mail address is unconfirmed and gets a new confirmation token;
    - `created_at` never changes after creation, `modified_at` is set on every save.

    Both work on a copy of the given record and write it once. The record given is never changed,
    and the stored one is untouched when they raise.

    ..caution:: `store` and `update_one` are still avaliable and bypass all of the above.
    """

    __logger = logging.getLogger("profilekeep.usrsys.storage.ProfileRecordStorage")

    def __init__(
        self,
        common_storage: CommonStorage,
        credential_codec: PasswordCredentialCodec,
        email_validator: Optional[EmailAddressValidator] = None,
    ) -> None:
        super().__init__(common_storage, ProfileRecordAdapter())
        self.credential_codec = credential_codec
        self.email_validator = (
            email_validator if email_validator else EmailAddressValidator()
        )
        self._write_lock = asyncio.Lock()

    def validate(self, record: ProfileRecord) -> None:
        """Raise `RecordValidationError` if `record` could not be stored."""
        missing: List[str] = []
        for name in PROFILE_REQUIRED_FIELDS:
            value = getattr(record, name)
            if value is None or value == "":
                missing.append(name)
        invalid: List[str] = []
        if "email" not in missing and not self.email_validator.is_valid(record.email):
            invalid.append("email")
        if missing or invalid:
            raise RecordValidationError(missing=missing, invalid=invalid)

    async def find_by_id(self, profileid: str) -> Optional[ProfileRecord]:
        return await self.find_one({"identity": profileid})

    async def find_by_email(self, email: str) -> Optional[ProfileRecord]:
        return await self.find_one({"email": email})

    def _mint_confirmation(self, record: ProfileRecord) -> None:
        record.is_email_confirmed = False
        record.email_confirmation_token = new_random_token()
        # Sending the confirmation link is up to the deployment, e.g. a mail queue
        self.__logger.info(
            "new e-mail confirmation token for profile {}".format(record.identity)
        )

    async def insert(self, record: ProfileRecord) -> ProfileRecord:
        """Store `record` as a new profile, return the stored copy."""
        self.validate(record)
        new_record = deepcopy(record)
        now = _utcnow()
        new_record.created_at = now
        new_record.modified_at = now
        new_record.blacklisted_tokens = []
        new_record.password = await self.credential_codec.encode(record.password)
        self._mint_confirmation(new_record)
        async with self._write_lock:
            if await self.find_by_email(new_record.email):
                raise DuplicateRecordError("email", new_record.email)
            if await self.find_by_id(new_record.identity):
                raise DuplicateRecordError("identity", new_record.identity)
            await self.store(new_record)
        return new_record

    async def save(self, record: ProfileRecord) -> ProfileRecord:
        """Replace the stored profile which has the same identity with `record`, return the stored copy.

        The changed fields are found by comparing with the stored profile.
        Raise `RecordNotFoundError` if there is no such profile.
        """
        self.validate(record)
        stored = await self.find_by_id(record.identity)
        if not stored:
            raise RecordNotFoundError(record.identity)
        updated = deepcopy(record)
        updated.created_at = stored.created_at
        updated.modified_at = _utcnow()
        if updated.blacklisted_tokens is None:
            updated.blacklisted_tokens = stored.blacklisted_tokens
        if updated.password != stored.password:
            updated.password = await self.credential_codec.encode(record.password)
        email_changed = updated.email != stored.email
        if email_changed:
            self._mint_confirmation(updated)
        async with self._write_lock:
            if email_changed:
                conflicting = await self.find_by_email(updated.email)
                if conflicting and conflicting.identity != updated.identity:
                    raise DuplicateRecordError("email", updated.email)
            result = await self.update_one({"identity": updated.identity}, updated)
            if not result:
                raise RecordNotFoundError(updated.identity)
        return updated

    async def check_password(self, email: str, password: str) -> bool:
        """Check the password of the profile with `email`.
        ..note:: The `password` is the password in plaintext.
        """
        doc = await self.find_by_email(email)
        if not doc or not doc.password:
            return False
        return await self.credential_codec.verify(password, doc.password)


class TokenRecordStorage(CommonStorageRecordWrapper[TokenRecord]):
    """
    A `profilekeep.utils.storage.RecordStorage` for `profilekeep.usrsys.tk.TokenRecord`.
    """

    def __init__(
        self,
        common_storage: CommonStorage,
        lifetime_seconds: Optional[int] = DEFAULT_TOKEN_LIFETIME_SECONDS,
    ) -> None:
        super().__init__(common_storage, DataclassCommonStorageAdapter(TokenRecord))
        self.lifetime_seconds = lifetime_seconds

    async def create_token(self, profileid: str) -> TokenRecord:
        """Create and store a new token."""
        new_record = TokenRecord.new(
            profileid, expiration_offset_seconds=self.lifetime_seconds
        )
        await self.store(new_record)
        return new_record

    async def find_token(self, token: str) -> Optional[TokenRecord]:
        """Find a `profilekeep.usrsys.tk.TokenRecord` with `token` as the token string."""
        return await self.find_one({"token": token})

    async def issue(self, profile: ProfileRecord) -> str:
        """Issue a token for `profile`. This makes the storage a `profilekeep.usrsys.auth.TokenIssuer`."""
        return (await self.create_token(profile.identity)).token
