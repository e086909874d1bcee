from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class QueueClosed(Exception):
    pass


class HandoffQueue(Generic[T]):
    """
    Zero-capacity queue: `put` returns only once a consumer has taken the item.

    `close` is terminal. Consumers drain an item already on offer, then every
    `get` raises `QueueClosed`.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: T | None = None
        self._offered = False
        self._closed = False
        self._put_seq = 0
        self._taken_seq = 0

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, item: T) -> None:
        with self._cond:
            # one offer at a time
            while self._offered and not self._closed:
                self._cond.wait()
            if self._closed:
                raise QueueClosed("put on closed queue")

            self._put_seq += 1
            ticket = self._put_seq
            self._item = item
            self._offered = True
            self._cond.notify_all()

            while self._taken_seq < ticket:
                self._cond.wait()

    def get(self) -> T:
        with self._cond:
            while not self._offered and not self._closed:
                self._cond.wait()
            if not self._offered:
                raise QueueClosed("queue closed")

            item = self._item
            self._item = None
            self._offered = False
            self._taken_seq += 1
            self._cond.notify_all()
            return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("queue already closed")
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except QueueClosed:
                return
