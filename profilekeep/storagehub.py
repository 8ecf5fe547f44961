"""This module contains `StorageHub`, the storage centre of profilekeep.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from unqlite import UnQLite

from .usrsys.addr import EmailAddressValidator
from .usrsys.storage import ProfileRecordStorage, TokenRecordStorage
from .usrsys.tk import DEFAULT_TOKEN_LIFETIME_SECONDS
from .utils.asec import PasswordCredentialCodec
from .utils.storage import CommonStorage, UnQLiteStorage


class StorageHub(object):
    """The storage centre for profilekeep. This class stores storages keep profilekeep storing data.

    ..note:: Typically you use the one from `profilekeep.ProfileKeep`.

    Every storage is created once. All of them share one single-worker executor, the only thread touching `database`.

    Related:

    - `profilekeep.utils.storage` The abstract storage layer of profilekeep.
    """

    def __init__(
        self,
        database: UnQLite,
        credential_codec: PasswordCredentialCodec,
        *,
        email_validator: Optional[EmailAddressValidator] = None,
        token_lifetime_seconds: Optional[int] = DEFAULT_TOKEN_LIFETIME_SECONDS,
    ) -> None:
        self.database = database
        """The database instance.
        .. important:: Don't depends on this property, profilekeep may support more database backend in future."""
        self.executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="profilekeep.storagehub.executor"
        )
        self.profile_records = ProfileRecordStorage(
            self.get_common_storage("profiles"),
            credential_codec,
            email_validator=email_validator,
        )
        """`profilekeep.usrsys.storage.ProfileRecordStorage`.

        Related:

        - `profilekeep.usrsys.usr.ProfileRecord` The object being stored.
        """
        self.token_records = TokenRecordStorage(
            self.get_common_storage("tokens"), lifetime_seconds=token_lifetime_seconds
        )
        """`profilekeep.usrsys.storage.TokenRecordStorage`.

        Related:

        - `profilekeep.usrsys.tk.TokenRecord` The object being stored.
        """
        super().__init__()

    def get_common_storage(self, name: str) -> CommonStorage:
        """Get a common storage with `name`."""
        return UnQLiteStorage(self.database, name, self.executor)

    def close(self) -> None:
        """Wait for pending operations, then close the database."""
        self.executor.shutdown(wait=True)
        self.database.close()
