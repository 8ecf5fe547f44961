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
"""`ReasonStream`: an ordered channel which emits many items, then ends exactly once.

A stream ends either by completing or by failing with an error. Nothing can be emitted after the end.

Typical usage:

````python
stream = ReasonStream.spawn(producer)  # producer(stream) is an async function calling stream.emit(...)
async for item in stream:
    ...
# or
items = await stream.collect()
````

The producer is scheduled with `asyncio.ensure_future`, it runs to the end even if nobody consumes the stream.
Consumers may join at any time and always see every item from the first one, in emission order.
"""
import asyncio
from asyncio import Future, ensure_future
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    TypeVar,
)

T = TypeVar("T")


class StreamClosedError(RuntimeError):
    """Raised when a stream which has already ended is asked to emit or end again."""


class ReasonStream(Generic[T]):
    """An ordered multi-emission channel.

    Attributes:
        value: `Any`. An optional result the producer attaches besides the items (e.g. the identity of a new record).
        raw_errors: `List[BaseException]`. Errors the producer recovered from and reported, for logging only.
        error: `Optional[BaseException]`. The error the stream failed with.
    """

    def __init__(self) -> None:
        self._items: List[T] = []
        self._ended = False
        self._changed = asyncio.Event()
        self._task: Optional[Future] = None
        self.value: Any = None
        self.raw_errors: List[BaseException] = []
        self.error: Optional[BaseException] = None
        super().__init__()

    @classmethod
    def spawn(
        cls, producer: Callable[["ReasonStream[T]"], Awaitable[None]]
    ) -> "ReasonStream[T]":
        """Create a stream and start `producer` on it.

        The stream completes when `producer` returns, or fails with the exception `producer` raises.
        """
        stream: "ReasonStream[T]" = cls()
        stream._task = ensure_future(stream._drive(producer))
        return stream

    async def _drive(
        self, producer: Callable[["ReasonStream[T]"], Awaitable[None]]
    ) -> None:
        try:
            await producer(self)
        except Exception as e:
            self.fail(e)
        else:
            self.complete()

    @property
    def ended(self) -> bool:
        """If the stream has completed or failed."""
        return self._ended

    @property
    def items(self) -> List[T]:
        """A copy of the items emitted so far."""
        return list(self._items)

    def emit(self, item: T) -> None:
        if self._ended:
            raise StreamClosedError("cannot emit on an ended stream")
        self._items.append(item)
        self._changed.set()

    def report(self, error: BaseException) -> None:
        """Attach an error the producer recovered from. It does not end the stream."""
        self.raw_errors.append(error)

    def complete(self) -> None:
        self._end()

    def fail(self, error: BaseException) -> None:
        self._end(error)

    def _end(self, error: Optional[BaseException] = None) -> None:
        if self._ended:
            raise StreamClosedError("the stream has already ended")
        self.error = error
        self._ended = True
        self._changed.set()

    async def __aiter__(self) -> AsyncIterator[T]:
        index = 0
        while True:
            while index < len(self._items):
                yield self._items[index]
                index += 1
            if self._ended:
                if self.error:
                    raise self.error
                return
            self._changed.clear()
            await self._changed.wait()

    async def collect(self) -> List[T]:
        """Wait for the end of the stream and return every item.
        Raise the error if the stream failed."""
        return [item async for item in self]

    async def wait(self) -> None:
        """Wait for the end of the stream, without raising its error."""
        while not self._ended:
            self._changed.clear()
            await self._changed.wait()
