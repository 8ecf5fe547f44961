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
"""Security tools, including password hashing: `CredentialRecord` and `PasswordCredentialCodec`.

A stored password is a credential record, which describes itself:

````
base64( u32be(salt_length) || u32be(iterations) || salt || hash )
````

The length of the hash is what remains after the salt. Because the iteration count travels with every record,
the default can be raised at any time without invalidating the records already stored.

Related:

- [hashlib.pbkdf2_hmac - Python documentation](https://docs.python.org/3/library/hashlib.html#hashlib.pbkdf2_hmac)
- [nacl.utils - PyNaCl documentation](https://pynacl.readthedocs.io/en/latest/utils/)
"""
import binascii
import hashlib
import hmac
import struct
from asyncio import Future, ensure_future, get_running_loop
from base64 import standard_b64decode, standard_b64encode
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Optional, Union

import nacl.utils

from . import global_executor

CREDENTIAL_SALT_LENGTH = 128
CREDENTIAL_ITERATIONS = 9973
CREDENTIAL_HASH_LENGTH = 512
CREDENTIAL_DIGEST = "sha512"
CREDENTIAL_MAX_ITERATIONS = 10_000_000
"""Records asking for more iterations are malformed, no derivation is attempted for them."""

_HEADER = struct.Struct(">II")

Password = Union[str, bytes]

RandomSource = Callable[[int], bytes]
"""A type for secure randomness sources: take a size, return that many random bytes."""

KeyDerivation = Callable[[bytes, bytes, int, int], bytes]
"""A type for password-based key derivations: `(password, salt, iterations, length) -> bytes`."""


class MalformedCredentialRecord(ValueError):
    """The string is not a credential record."""


def pbkdf2_sha512(password: bytes, salt: bytes, iterations: int, length: int) -> bytes:
    """The default `KeyDerivation`: PBKDF2 with HMAC-SHA512."""
    return hashlib.pbkdf2_hmac(CREDENTIAL_DIGEST, password, salt, iterations, length)


def random_bytes(size: int) -> bytes:
    """The default `RandomSource`, backed by libsodium."""
    return nacl.utils.random(size)


def new_random_token(size: int = 32) -> str:
    """Return `size` random bytes in hex. Used for e-mail confirmation tokens and session tokens."""
    return random_bytes(size).hex()


@dataclass
class CredentialRecord(object):
    """The decoded structure of a stored password.

    Attributes:
        iterations: `int`. The iteration count used in derivation.
        salt: `bytes`.
        hash: `bytes`. The derived key.
    """

    iterations: int
    salt: bytes
    hash: bytes

    @property
    def salt_length(self) -> int:
        return len(self.salt)

    def to_bytes(self) -> bytes:
        return _HEADER.pack(self.salt_length, self.iterations) + self.salt + self.hash

    def to_string(self) -> str:
        """Encode this record as an ASCII string."""
        return standard_b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_string(cls, encoded: str) -> "CredentialRecord":
        """Decode a record from `encoded`, recovering the salt and the hash only from the buffer structure.

        Raise `MalformedCredentialRecord` if it is not a valid record.
        """
        try:
            buffer = standard_b64decode(encoded.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
            raise MalformedCredentialRecord("not base64") from e
        if len(buffer) < _HEADER.size:
            raise MalformedCredentialRecord("record is too short")
        salt_length, iterations = _HEADER.unpack_from(buffer)
        hash_offset = _HEADER.size + salt_length
        if hash_offset >= len(buffer):
            raise MalformedCredentialRecord("salt length exceeds the record")
        if iterations < 1:
            raise MalformedCredentialRecord("iteration count must be positive")
        if iterations > CREDENTIAL_MAX_ITERATIONS:
            raise MalformedCredentialRecord("iteration count is out of range")
        return cls(
            iterations=iterations,
            salt=buffer[_HEADER.size : hash_offset],
            hash=buffer[hash_offset:],
        )


def _password_bytes(password: Password) -> bytes:
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


class PasswordCredentialCodec(object):
    """Encode passwords into credential records and verify passwords against them.

    `encode_sync` and `verify_sync` are CPU-bound: they block the calling thread for the whole derivation.
    Inside the event loop use `encode` and `verify`, which run them on `executor`
    (by default the shared one from `global_executor`).

    Errors from the randomness source or from the derivation are never caught here: they mean a broken runtime.
    """

    def __init__(
        self,
        *,
        iterations: int = CREDENTIAL_ITERATIONS,
        salt_length: int = CREDENTIAL_SALT_LENGTH,
        hash_length: int = CREDENTIAL_HASH_LENGTH,
        derive: KeyDerivation = pbkdf2_sha512,
        random_source: RandomSource = random_bytes,
        executor: Optional[Executor] = None,
    ) -> None:
        if iterations < 1 or salt_length < 1 or hash_length < 1:
            raise ValueError("iterations, salt_length and hash_length must be positive")
        if iterations > CREDENTIAL_MAX_ITERATIONS:
            raise ValueError(
                "iterations must not exceed {}".format(CREDENTIAL_MAX_ITERATIONS)
            )
        self.iterations = iterations
        """`int`. Iteration count for new records. Existing records keep their own."""
        self.salt_length = salt_length
        self.hash_length = hash_length
        self.derive = derive
        self.random_source = random_source
        self.executor = executor
        super().__init__()

    def encode_sync(self, password: Password) -> str:
        """Hash `password` with a fresh salt, return the credential record string.

        ..caution:: This function is synchrounous.
        """
        if password is None:
            raise ValueError("password must not be None")
        salt = self.random_source(self.salt_length)
        derived = self.derive(
            _password_bytes(password), salt, self.iterations, self.hash_length
        )
        return CredentialRecord(
            iterations=self.iterations, salt=salt, hash=derived
        ).to_string()

    def verify_sync(self, password: Optional[Password], encoded: str) -> bool:
        """Check if `password` matches the record `encoded`.
        Malformed records and `None` passwords never match.

        ..caution:: This function is synchrounous.
        """
        if password is None:
            return False
        try:
            record = CredentialRecord.from_string(encoded)
        except MalformedCredentialRecord:
            return False
        derived = self.derive(
            _password_bytes(password), record.salt, record.iterations, len(record.hash)
        )
        return hmac.compare_digest(derived, record.hash)

    def _get_executor(self) -> Executor:
        return self.executor if self.executor else global_executor.get()

    def encode(self, password: Password) -> "Future[str]":
        """Run `encode_sync` in another thread."""
        return ensure_future(
            get_running_loop().run_in_executor(
                self._get_executor(), self.encode_sync, password
            )
        )

    def verify(self, password: Optional[Password], encoded: str) -> "Future[bool]":
        """Run `verify_sync` in another thread."""
        return ensure_future(
            get_running_loop().run_in_executor(
                self._get_executor(), self.verify_sync, password, encoded
            )
        )
