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
"""`LogOnAnswer`, `TokenIssuer` and `AuthProvider`: The authentication tools for the user system.

`AuthProvider` decides whether a profile may log on: the e-mail address is confirmed, the profile is not deactivated
and the password matches. What a session token looks like is up to the `TokenIssuer`.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Optional, Protocol

from .addr import EmailAddressValidator
from .storage import ProfileRecordStorage, TokenRecordStorage
from .usr import LogOnInfo, ProfileRecord


class TokenIssuer(Protocol):
    """A protocol type for anything which turns an eligible profile into a session token.

    Related:

    - `profilekeep.usrsys.storage.TokenRecordStorage` The default one, storing opaque tokens.
    """

    def issue(self, profile: ProfileRecord) -> Awaitable[str]:
        """Return a new session token for `profile`."""
        ...


@dataclass
class LogOnAnswer(object):
    """The answer for logging on.

    Attributes:
        success: `bool`. The result.
        token: `Optional[str]`. The session token, only when succeed.
        profileid: `Optional[str]`. The identity of the profile logged on, only when succeed.

    ..note:: A failed answer never tells why it failed.
    """

    success: bool
    token: Optional[str] = None
    profileid: Optional[str] = None


class AuthProvider(object):
    """Provide authentication to other concepts of Profilekeep."""

    __logger = logging.getLogger("profilekeep.usrsys.auth.AuthProvider")

    def __init__(
        self,
        profile_record_storage: ProfileRecordStorage,
        token_record_storage: TokenRecordStorage,
        token_issuer: Optional[TokenIssuer] = None,
        email_validator: Optional[EmailAddressValidator] = None,
    ) -> None:
        self.profile_record_storage = profile_record_storage
        self.token_record_storage = token_record_storage
        self.token_issuer: TokenIssuer = (
            token_issuer if token_issuer else token_record_storage
        )
        self.email_validator = (
            email_validator if email_validator else EmailAddressValidator()
        )
        super().__init__()

    @staticmethod
    def is_eligible(profile: ProfileRecord) -> bool:
        """Check if `profile` may log on, not considering the password."""
        return profile.is_email_confirmed and not profile.is_deactivated

    async def log_on(self, info: LogOnInfo) -> LogOnAnswer:
        """Process a log on request.

        `info` is checked before any lookup, invalid infomation fails immediately.
        """
        if not info.check_validity(self.email_validator):
            return LogOnAnswer(success=False)
        profile = await self.profile_record_storage.find_by_email(info.email_address)
        if not profile or not profile.password:
            return LogOnAnswer(success=False)
        password_checking = await self.profile_record_storage.credential_codec.verify(
            info.password, profile.password
        )
        if not password_checking or not self.is_eligible(profile):
            self.__logger.info("log on refused for profile {}".format(profile.identity))
            return LogOnAnswer(success=False)
        token = await self.token_issuer.issue(profile)
        return LogOnAnswer(success=True, token=token, profileid=profile.identity)

    async def log_off(self, profileid: str, token: str) -> bool:
        """Revoke `token` by adding it to the blacklist of the profile.
        Return `False` if the profile does not exist."""
        profile = await self.profile_record_storage.find_by_id(profileid)
        if not profile:
            return False
        tokens = profile.blacklisted_tokens if profile.blacklisted_tokens else []
        if token not in tokens:
            profile.blacklisted_tokens = tokens + [token]
            await self.profile_record_storage.save(profile)
        return True

    async def check_token(self, token: str) -> Optional[ProfileRecord]:
        """Return the profile `token` acts for, or `None` if the token is not usable.

        A usable token exists, is not expired, is not in the blacklist of its profile,
        and the profile still may log on.
        """
        record = await self.token_record_storage.find_token(token)
        if not record or not record.is_available():
            return None
        profile = await self.profile_record_storage.find_by_id(record.profileid)
        if not profile or not self.is_eligible(profile):
            return None
        if profile.blacklisted_tokens and token in profile.blacklisted_tokens:
            return None
        return profile
