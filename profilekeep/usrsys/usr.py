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
"""This module contains definitions about profiles: `ProfileRecord`, `FailureReason` and `LogOnInfo`.
"""
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from .addr import EmailAddressValidator

DEFAULT_TIME_ZONE = "Europe/London"


class FailureReason(Enum):
    """Reasons for a profile operation to fail. One operation may report more than one.

    `NONE` is reported alone, when the operation succeeded.
    """

    NONE = 0
    DUPLICATE_EMAIL = 1
    MISSING_REQUIRED = 2
    INACTIVE_PROFILE = 3
    UNCONFIRMED_EMAIL = 4
    NON_EXISTENT_PROFILE = 5
    UNKNOWN = 6


@dataclass
class ProfileRecord(object):
    """Infomation about a user.

    Attributes:
        identity: A UUID `str`, which refered as profile identity.
        email: `Optional[str]`. The e-mail address, unique among all profiles. Required.
        password: `Optional[str]`. Plaintext before the first save, a credential record after it
            (see `profilekeep.utils.asec`). Required.
        full_name: `Optional[str]`. Required.
        birthday: `Optional[date]`. Required.
        nickname: `Optional[str]`.
        about_me: `Optional[str]`.
        time_zone: `Optional[str]`. The time zone the user operates from. Required.
        is_email_confirmed: `bool`. Reset to `False` every time `email` changes.
        email_confirmation_token: `Optional[str]`. Minted every time `email` changes.
        blacklisted_tokens: `Optional[List[str]]`. Session tokens revoked by logging off.
        is_deactivated: `bool`. Deactivation can not be undone.
        created_at: `Optional[datetime]`. Set on creation, never changed later.
        modified_at: `Optional[datetime]`. Set on every save.

    ..note:: `password`, `email_confirmation_token` and `blacklisted_tokens` are `None` in profiles cleaned for clients.
        See `profilekeep.usrsys.profile.ProfileService.clean_profile_for_client`.
    """

    identity: str
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None
    birthday: Optional[date] = None
    nickname: Optional[str] = None
    about_me: Optional[str] = None
    time_zone: Optional[str] = DEFAULT_TIME_ZONE
    is_email_confirmed: bool = False
    email_confirmation_token: Optional[str] = None
    blacklisted_tokens: Optional[List[str]] = field(default_factory=list)
    is_deactivated: bool = False
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        *,
        email: Optional[str],
        password: Optional[str],
        full_name: Optional[str],
        birthday: Optional[date],
        nickname: Optional[str] = None,
        about_me: Optional[str] = None,
        time_zone: Optional[str] = DEFAULT_TIME_ZONE,
    ) -> "ProfileRecord":
        """Shortcut to create a profile with a new identity.

        ..note:: This method just create an object, use `profilekeep.usrsys.profile.ProfileService.create_new_profile` to store it.
        """
        return cls(
            identity=uuid4().hex,
            email=email,
            password=password,
            full_name=full_name,
            birthday=birthday,
            nickname=nickname,
            about_me=about_me,
            time_zone=time_zone,
        )

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))


PROFILE_REQUIRED_FIELDS = ("email", "password", "full_name", "birthday", "time_zone")
"""Fields which must have a value in every stored profile."""


@dataclass
class LogOnInfo(object):
    """Infomation to log on with.

    Attributes:
        email_address: `str`.
        password: `Optional[str]`. Plaintext.
    """

    email_address: str
    password: Optional[str]  # TODO: use a customised type to prevent it being logged

    def check_validity(self, validator: Optional[EmailAddressValidator] = None) -> bool:
        """Check if the infomation could be used: the password is given and the address is valid."""
        if not validator:
            validator = EmailAddressValidator()
        return self.password is not None and validator.is_valid(self.email_address)
