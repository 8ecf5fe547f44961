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

import logging
from datetime import date
from typing import Optional

from unqlite import UnQLite

from .storagehub import StorageHub
from .usrsys.addr import EmailAddressValidator
from .usrsys.auth import AuthProvider, LogOnAnswer, TokenIssuer
from .usrsys.profile import ProfileService
from .usrsys.tk import DEFAULT_TOKEN_LIFETIME_SECONDS
from .usrsys.usr import FailureReason, LogOnInfo, ProfileRecord
from .utils import global_executor
from .utils.asec import (
    CREDENTIAL_HASH_LENGTH,
    CREDENTIAL_ITERATIONS,
    CREDENTIAL_SALT_LENGTH,
    PasswordCredentialCodec,
)
from .utils.channel import ReasonStream


class ProfileKeep(object):
    """The entry of Profilekeep. This class stores configuration and builds the components, once each.

    Current components:

    - Storage hub (`profilekeep.StorageHub`)
    - Profile lifecycle (`profilekeep.usrsys.profile.ProfileService`)
    - Authentication (`profilekeep.usrsys.auth.AuthProvider`)

    Components are handed to each other by reference, nothing is process-wide.
    Pass the components on to whatever serves requests, typically `profile_service` and `auth_provider`.

    .. caution:: Changing the properties after construction does not reconfigure the components.
    """

    __logger = logging.getLogger("profilekeep.ProfileKeep")

    def __init__(
        self,
        *,
        database_path: str,
        password_iterations: int = CREDENTIAL_ITERATIONS,
        password_salt_length: int = CREDENTIAL_SALT_LENGTH,
        password_hash_length: int = CREDENTIAL_HASH_LENGTH,
        token_lifetime_seconds: Optional[int] = DEFAULT_TOKEN_LIFETIME_SECONDS,
        token_issuer: Optional[TokenIssuer] = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        """`bool`. Log at debug level for the `profilekeep` logger."""
        if debug:
            logging.getLogger("profilekeep").setLevel(logging.DEBUG)
        self.database_path = database_path
        """`str`. The path to database. Currently it's a file path or ":mem:".
        ":mem:" tells UnQLite open database in memory."""
        self.database = UnQLite(database_path)
        """Database instance. Notice that this property may not be avaliable in future."""
        self.email_validator = EmailAddressValidator()
        """`profilekeep.usrsys.addr.EmailAddressValidator`. Shared by all components."""
        self.credential_codec = PasswordCredentialCodec(
            iterations=password_iterations,
            salt_length=password_salt_length,
            hash_length=password_hash_length,
        )
        """`profilekeep.utils.asec.PasswordCredentialCodec`. Encodes new passwords with the configured parameters.
        Records encoded with other parameters are still verified."""
        self.storage_hub = StorageHub(
            self.database,
            self.credential_codec,
            email_validator=self.email_validator,
            token_lifetime_seconds=token_lifetime_seconds,
        )
        """`profilekeep.StorageHub`. The references to all storages in profilekeep."""
        self.profile_service = ProfileService(self.storage_hub.profile_records)
        """`profilekeep.usrsys.profile.ProfileService`. The profile lifecycle for this instance."""
        self.auth_provider = AuthProvider(
            self.storage_hub.profile_records,
            self.storage_hub.token_records,
            token_issuer=token_issuer,
            email_validator=self.email_validator,
        )
        """`profilekeep.usrsys.auth.AuthProvider`. The auth provider for this instance."""
        self.__logger.debug("opened database {}".format(database_path))
        super().__init__()

    async def new_profile(
        self,
        email: str,
        password: str,
        full_name: str,
        birthday: date,
        **kwargs,
    ) -> Optional[str]:
        """Create a profile and return its identity, or `None` if it could not be created.
        This method is for programmaic uses from outside, use `ProfileService.create_new_profile` for failure reasons.
        """
        stream = self.profile_service.create_new_profile(
            ProfileRecord.new(
                email=email,
                password=password,
                full_name=full_name,
                birthday=birthday,
                **kwargs,
            )
        )
        reasons = await stream.collect()
        if reasons == [FailureReason.NONE]:
            return stream.value
        self.__logger.info("could not create profile: {}".format(reasons))
        return None

    def close(self) -> None:
        """Close the database and shut the shared hashing executor down.
        Other instances still running get a new executor on their next hashing."""
        self.storage_hub.close()
        global_executor.shutdown()


__all__ = [
    "ProfileKeep",
    "StorageHub",
    "ProfileService",
    "AuthProvider",
    "LogOnAnswer",
    "LogOnInfo",
    "ProfileRecord",
    "FailureReason",
    "ReasonStream",
    "PasswordCredentialCodec",
    "EmailAddressValidator",
]
