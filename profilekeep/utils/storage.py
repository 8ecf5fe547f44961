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
"""The abstract storage layer of Profilekeep.

The abstract storage layer is centred on the concept of Record, the smallest storable unit (see `RecordStorage`).

A `CommonStorage` is a `RecordStorage` of `dict` with `str` keys. It is the only thing a backend must provide.
Most records in Profilekeep are `dataclasses.dataclass`, so `CommonStorageRecordWrapper` together with a
`CommonStorageAdapter` (typically `DataclassCommonStorageAdapter`) turns a `CommonStorage` into a `RecordStorage`
reading and writing the record type directly.

Constraint violations are reported with the exceptions defined here:

- `DuplicateRecordError`: a uniqueness constraint is violated.
- `RecordValidationError`: a record does not satisfy its schema (missing or invalid fields).
- `RecordNotFoundError`: the record to be replaced does not exist.

All of them are `StorageError`. Anything else raised by a backend should be treated as a system failure.
"""
import asyncio
import dataclasses
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Any,
    AsyncIterable,
    Awaitable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Type,
    TypeVar,
)

from unqlite import Collection, UnQLite

T = TypeVar("T")


class StorageError(Exception):
    """Base class of the errors the storage layer reports on purpose."""


class DuplicateRecordError(StorageError):
    """A uniqueness constraint is violated.

    Attributes:
        field: `str`. The unique field.
        value: The conflicting value.
    """

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__("duplicate value for unique field {!r}".format(field))


class RecordValidationError(StorageError):
    """A record does not satisfy its schema.

    Attributes:
        missing: `List[str]`. Required fields without value.
        invalid: `List[str]`. Fields with a value which is not acceptable.
    """

    def __init__(
        self, missing: Iterable[str] = (), invalid: Iterable[str] = ()
    ) -> None:
        self.missing = list(missing)
        self.invalid = list(invalid)
        super().__init__(
            "validation failed (missing: {}, invalid: {})".format(
                ", ".join(self.missing) or "-", ", ".join(self.invalid) or "-"
            )
        )


class RecordNotFoundError(StorageError):
    """The record to be replaced could not be found."""


class RecordStorage(Generic[T]):
    """A protocol type which describes basic database operations on a type.

    This class describes all queries in `dict` with `str` as key.
    A query matches a record only when every key of the query is in the record with an equal value.
    """

    def store(self, record: T) -> Awaitable[T]:
        """Save a record as new."""
        ...

    def find(self, query: Dict[str, Any]) -> AsyncIterable[T]:
        """Find records which completely matchs `query`."""
        ...

    def find_one(self, query: Dict[str, Any]) -> Awaitable[Optional[T]]:
        """Find one record which completely matchs `query`."""
        ...

    def update_one(self, query: Dict[str, Any], updated: T) -> Awaitable[Optional[T]]:
        """Replace one record, which matchs `query`, with `updated`."""
        ...

    def remove_one(self, query: Dict[str, Any]) -> Awaitable[bool]:
        """Remove one record which matches `query`."""
        ...

    def remove(self, query: Dict[str, Any]) -> Awaitable[int]:
        """Remove all records match `query`."""
        ...


class CommonStorage(RecordStorage[Dict[str, Any]]):
    """A protocol type which is `RecordStorage` with `Dict[str, Any]` (read/write `dict`) for general purpose."""

    pass


class CommonStorageAdapter(Generic[T]):
    """Adapter for `CommonStorageRecordWrapper`.
    Implement `record2dict` and `dict2record` to transform the data between record and dict.
    """

    def record2dict(self, record: T) -> Dict[str, Any]:
        """Build a `dict` from `record`."""
        ...

    def dict2record(self, d: Dict[str, Any]) -> T:
        """Build a record from a `d`."""
        ...


class CommonStorageRecordWrapper(RecordStorage[T]):
    """
    A wrapper for `CommonStorage`, convert the common storage to a `RecordStorage` which can read and write a record type directly.

    Extend this class, pass though the common storage and add an implementation of `CommonStorageAdapter`:

    ````python
    class TokenRecordStorage(CommonStorageRecordWrapper[TokenRecord]):
        def __init__(self, common_storage: CommonStorage) -> None:
            super().__init__(common_storage, DataclassCommonStorageAdapter(TokenRecord))
    ````
    """

    def __init__(
        self, common_storage: CommonStorage, adapter: CommonStorageAdapter[T]
    ) -> None:
        self.common_storage = common_storage
        self.adapter = adapter
        super().__init__()

    async def store(self, record: T) -> T:
        d = self.adapter.record2dict(record)
        result = await self.common_storage.store(d)
        return self.adapter.dict2record(result)

    async def find(self, query: Dict[str, Any]) -> AsyncIterable[T]:
        async for doc in self.common_storage.find(query):
            yield self.adapter.dict2record(doc)

    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        result = await self.common_storage.find_one(query)
        if result:
            return self.adapter.dict2record(result)
        else:
            return None

    async def update_one(self, query: Dict[str, Any], updated: T) -> Optional[T]:
        result = await self.common_storage.update_one(
            query, self.adapter.record2dict(updated)
        )
        if result:
            return self.adapter.dict2record(result)
        return None

    async def remove(self, query: Dict[str, Any]) -> int:
        return await self.common_storage.remove(query)

    async def remove_one(self, query: Dict[str, Any]) -> bool:
        return await self.common_storage.remove_one(query)


class DataclassCommonStorageAdapter(Generic[T], CommonStorageAdapter[T]):
    """A `CommonStorageAdapter` for `dataclasses`.

    ..warning:: the checking is performed by dataclass itself. `dataclasses` does not check the actual data type, but checking the fields given.
    """

    def __init__(self, datacls: Type[T]) -> None:
        assert dataclasses.is_dataclass(datacls), "datacls should be a dataclass"
        self.datacls = datacls
        super().__init__()

    def dict2record(self, d: Dict[str, Any]) -> T:
        d = d.copy()
        if "__id" in d:
            d.pop("__id")
        return self.datacls(**d)  # type: ignore # it should work

    def record2dict(self, record: T) -> Dict[str, Any]:
        return dataclasses.asdict(record)


class UnQLiteStorage(CommonStorage):
    """An implementation of `CommonStorage` for `unqlite.UnQLite`.

    .. note:: The API of `unqlite-python` is synchrounous.
        Every operation is run on `executor`. Pass the same single-worker executor to every storage sharing one
        `UnQLite` instance, so the database is never touched by two threads at a time.

    Related:

    - [unqlite-python API documentation](https://unqlite-python.readthedocs.io/en/latest/api.html)
    """

    def __init__(
        self,
        instance: UnQLite,
        collection_name: str,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        if not executor:
            executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="profilekeep.utils.storage.UnQLiteStorage.executor",
            )
        self.executor = executor
        self.instance = instance
        self.collection_name = collection_name
        self.new_collection.create()
        super().__init__()

    @property
    def new_collection(self) -> Collection:
        """Return a new collection.

        ..note:: `unqlite.Collection` mantains cursor-like states in it, every operation uses its own one.
        """
        return self.instance.collection(self.collection_name)

    def _run(self, fn, *args) -> Awaitable[Any]:
        return asyncio.get_running_loop().run_in_executor(self.executor, fn, *args)

    @classmethod
    def doc_match(cls, doc: Dict[str, Any], match: Dict[str, Any]) -> bool:
        """Check if `doc` completely matchs `match`."""
        for k in match:
            if k not in doc or doc[k] != match[k]:
                return False
        return True

    def store_sync(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Store the `record` without thread pool."""
        self.new_collection.store(record)
        return record

    def find_sync(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Return all documents matching `query` without thread pool."""
        return self.new_collection.filter(lambda d: self.doc_match(d, query))

    def update_one_sync(
        self, query: Dict[str, Any], updated: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        for doc in self.find_sync(query):
            self.new_collection.update(doc["__id"], updated)
            return updated
        return None

    def remove_sync(self, query: Dict[str, Any], limit: Optional[int] = None) -> int:
        docs = self.find_sync(query)
        if limit is not None:
            docs = docs[:limit]
        collection = self.new_collection
        for doc in docs:
            collection.delete(doc["__id"])
        return len(docs)

    def store(self, record: Dict[str, Any]) -> Awaitable[Dict[str, Any]]:
        return self._run(self.store_sync, record)

    async def find(self, query: Dict[str, Any]) -> AsyncIterable[Dict[str, Any]]:
        for doc in await self._run(self.find_sync, query):
            yield doc

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async for doc in self.find(query):
            return doc
        return None

    def update_one(
        self, query: Dict[str, Any], updated: Dict[str, Any]
    ) -> Awaitable[Optional[Dict[str, Any]]]:
        return self._run(self.update_one_sync, query, updated)

    def remove(self, query: Dict[str, Any]) -> Awaitable[int]:
        return self._run(self.remove_sync, query)

    async def remove_one(self, query: Dict[str, Any]) -> bool:
        return (await self._run(self.remove_sync, query, 1)) > 0
