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
"""This module helps deal with session tokens: `TokenRecord`.

Tokens are opaque to clients. The one thing a client can do with a token is giving it back.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..utils.asec import new_random_token

DEFAULT_TOKEN_LIFETIME_SECONDS = 30 * 60


def _utc_timestamp() -> int:
    return int(datetime.now(timezone.utc).timestamp())


@dataclass
class TokenRecord(object):
    """Infomation about a token.

    Attributes:
        token: `str`. The token string.
        profileid: `str`. The profile identity linked to the authenticated user.
        expiration: `Optional[int]` of unix timestamp (from UTC). After the time of the timestamp described, the token is unavaliable.
    """

    token: str
    profileid: str
    expiration: Optional[int] = None

    @classmethod
    def new(
        cls,
        profileid: str,
        *,
        expiration_offset_seconds: Optional[int] = DEFAULT_TOKEN_LIFETIME_SECONDS,
    ) -> "TokenRecord":
        """Shortcut to create a new token object. `expiration_offset_seconds` as `None` makes a token never expires.

        ..note:: This method just create an object, you should store it before using.
            Or just use `TokenRecordStorage.create_token`, which will take care of that.
        """
        expiration = None
        if expiration_offset_seconds is not None:
            expiration = _utc_timestamp() + expiration_offset_seconds
        return cls(
            token=new_random_token(),
            profileid=profileid,
            expiration=expiration,
        )

    def is_available(self, now: Optional[int] = None) -> bool:
        """Check if the token is not expired at `now` (default to the current time)."""
        if self.expiration is None:
            return True
        if now is None:
            now = _utc_timestamp()
        return now < self.expiration
