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
"""`ProfileService`: the lifecycle of profiles.

A profile is created unconfirmed, becomes confirmed with the token minted for its e-mail address,
and may be deactivated from either state. Deactivation is final.

Every operation returns a `profilekeep.utils.channel.ReasonStream` of `profilekeep.usrsys.usr.FailureReason`.
Several reasons may be reported by one operation, for example creating a profile with the address of an
unconfirmed, deactivated profile reports `DUPLICATE_EMAIL`, `INACTIVE_PROFILE` and `UNCONFIRMED_EMAIL`, in this order.

````python
reasons = await profile_service.create_new_profile(profile).collect()
if reasons == [FailureReason.NONE]:
    ...
````

Storage failures are reported as `FailureReason.UNKNOWN`, the exception goes to `ReasonStream.raw_errors`.
"""
import logging
from copy import deepcopy
from typing import Any, Dict, Optional

from ..utils.channel import ReasonStream
from ..utils.storage import DuplicateRecordError, RecordValidationError
from .storage import ProfileRecordStorage
from .usr import FailureReason, ProfileRecord

IMMUTABLE_FIELDS = frozenset(
    [
        "identity",
        "modified_at",
        "is_deactivated",
        "is_email_confirmed",
        "email_confirmation_token",
    ]
)
"""Fields `ProfileService.update_profile` never touches. `created_at` is protected by the storage.

The lifecycle flags only move through `ProfileService.deactivate_profile` and
`ProfileService.confirm_profile_email_address`.
"""


class ProfileService(object):
    """Create, update, deactivate and confirm profiles.

    Related:

    - `profilekeep.usrsys.storage.ProfileRecordStorage` Where the invariants of profiles are kept.
    """

    __logger = logging.getLogger("profilekeep.usrsys.profile.ProfileService")

    def __init__(self, profile_record_storage: ProfileRecordStorage) -> None:
        self.profile_record_storage = profile_record_storage
        super().__init__()

    def _report_unknown(
        self, stream: ReasonStream[FailureReason], error: Exception, action: str
    ) -> None:
        self.__logger.exception("failed to {}".format(action), exc_info=error)
        stream.report(error)
        stream.emit(FailureReason.UNKNOWN)

    async def _explain_conflict(
        self, email: Optional[str], stream: ReasonStream[FailureReason]
    ) -> None:
        """Look up the profile owning `email` and report why it blocks the address.

        If the lookup fails or finds nothing, `DUPLICATE_EMAIL` stays the only reason.
        """
        try:
            conflicting = await self.profile_record_storage.find_by_email(email)
        except Exception as e:
            self.__logger.warning(
                "could not look up the profile owning a duplicate address", exc_info=e
            )
            stream.report(e)
            return
        if not conflicting:
            self.__logger.info("the profile owning a duplicate address disappeared")
            return
        if conflicting.is_deactivated:
            stream.emit(FailureReason.INACTIVE_PROFILE)
        if not conflicting.is_email_confirmed:
            stream.emit(FailureReason.UNCONFIRMED_EMAIL)

    async def _write(
        self,
        stream: ReasonStream[FailureReason],
        profile: ProfileRecord,
        new: bool,
    ) -> Optional[ProfileRecord]:
        try:
            if new:
                return await self.profile_record_storage.insert(profile)
            else:
                return await self.profile_record_storage.save(profile)
        except DuplicateRecordError as e:
            if e.field != "email":
                self._report_unknown(
                    stream, e, "write profile {}".format(profile.identity)
                )
                return None
            stream.emit(FailureReason.DUPLICATE_EMAIL)
            await self._explain_conflict(profile.email, stream)
        except RecordValidationError as e:
            self.__logger.info("profile rejected: {}".format(e))
            stream.emit(FailureReason.MISSING_REQUIRED)
        except Exception as e:
            self._report_unknown(stream, e, "write profile {}".format(profile.identity))
        return None

    async def _find(
        self, stream: ReasonStream[FailureReason], query: Dict[str, Any]
    ) -> Optional[ProfileRecord]:
        """Find a profile, reporting `NON_EXISTENT_PROFILE` or `UNKNOWN` when there is none."""
        try:
            profile = await self.profile_record_storage.find_one(query)
        except Exception as e:
            self._report_unknown(stream, e, "look up profile")
            return None
        if not profile:
            stream.emit(FailureReason.NON_EXISTENT_PROFILE)
        return profile

    def create_new_profile(self, profile: ProfileRecord) -> ReasonStream[FailureReason]:
        """Create `profile`. The plaintext password in it will be encoded.

        The identity of the new profile is in `ReasonStream.value` after `FailureReason.NONE`.
        """

        async def producer(stream: ReasonStream[FailureReason]) -> None:
            created = await self._write(stream, profile, new=True)
            if created:
                stream.value = created.identity
                stream.emit(FailureReason.NONE)

        return ReasonStream.spawn(producer)

    def update_profile(
        self, profileid: str, changes: Dict[str, Any]
    ) -> ReasonStream[FailureReason]:
        """Apply `changes`, a `dict` of field names to new values, on the profile `profileid`.

        Only the fields which differ from the stored profile are changed, unknown names and `IMMUTABLE_FIELDS` are ignored.
        A new password is encoded, a new e-mail address needs confirming again.
        """

        async def producer(stream: ReasonStream[FailureReason]) -> None:
            existing = await self._find(stream, {"identity": profileid})
            if not existing:
                return
            updated = deepcopy(existing)
            for name in ProfileRecord.field_names():
                if name in IMMUTABLE_FIELDS or name not in changes:
                    continue
                if getattr(existing, name) != changes[name]:
                    setattr(updated, name, changes[name])
            if await self._write(stream, updated, new=False):
                stream.emit(FailureReason.NONE)

        return ReasonStream.spawn(producer)

    def deactivate_profile(self, profileid: str) -> ReasonStream[FailureReason]:
        """Deactivate the profile `profileid`. Deactivating twice reports `INACTIVE_PROFILE`."""

        async def producer(stream: ReasonStream[FailureReason]) -> None:
            existing = await self._find(stream, {"identity": profileid})
            if not existing:
                return
            if existing.is_deactivated:
                stream.emit(FailureReason.INACTIVE_PROFILE)
                return
            existing.is_deactivated = True
            try:
                await self.profile_record_storage.save(existing)
            except Exception as e:
                self._report_unknown(stream, e, "deactivate profile {}".format(profileid))
                return
            stream.emit(FailureReason.NONE)

        return ReasonStream.spawn(producer)

    def confirm_profile_email_address(
        self, email: str, confirmation_token: str
    ) -> ReasonStream[FailureReason]:
        """Confirm the e-mail address of the profile with both `email` and `confirmation_token`.

        A wrong token reports `NON_EXISTENT_PROFILE`, the same as an unknown address.
        An address already confirmed reports `DUPLICATE_EMAIL`.
        """

        async def producer(stream: ReasonStream[FailureReason]) -> None:
            if not email or not confirmation_token:
                stream.emit(FailureReason.NON_EXISTENT_PROFILE)
                return
            existing = await self._find(
                stream, {"email": email, "email_confirmation_token": confirmation_token}
            )
            if not existing:
                return
            if existing.is_email_confirmed:
                stream.emit(FailureReason.DUPLICATE_EMAIL)
                return
            if existing.is_deactivated:
                stream.emit(FailureReason.INACTIVE_PROFILE)
                return
            existing.is_email_confirmed = True
            try:
                await self.profile_record_storage.save(existing)
            except Exception as e:
                self._report_unknown(
                    stream, e, "confirm profile {}".format(existing.identity)
                )
                return
            stream.emit(FailureReason.NONE)

        return ReasonStream.spawn(producer)

    async def get_profile(self, profileid: str) -> Optional[ProfileRecord]:
        return await self.profile_record_storage.find_by_id(profileid)

    async def find_profile_by_email(self, email: str) -> Optional[ProfileRecord]:
        return await self.profile_record_storage.find_by_email(email)

    @staticmethod
    def clean_profile_for_client(
        profile: ProfileRecord, in_place: bool = False
    ) -> ProfileRecord:
        """Remove the password, the blacklisted tokens and the e-mail confirmation token from `profile`.

        Return a cleaned copy, `profile` is left as is.
        With `in_place`, `profile` itself is cleaned and returned: other references to it see the change.
        """
        result = profile if in_place else deepcopy(profile)
        result.password = None
        result.blacklisted_tokens = None
        result.email_confirmation_token = None
        return result
