"""Process-wide holder of the latest configuration snapshot."""

from __future__ import annotations

import threading
import time
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

C = TypeVar("C", bound=BaseModel)


class SharedConfig(Generic[C]):
    """Single slot holding the most recent config, or None before the first fetch.

    Configs are frozen models, so handing out the stored reference is the
    same as handing out a copy. The lock is only held for the swap/read and
    never across an await.
    """

    def __init__(self) -> None:
        self._value: C | None = None
        self._updated_mono: float | None = None
        self._writes = 0
        self._lock = threading.Lock()

    def read(self) -> C | None:
        with self._lock:
            return self._value

    def write(self, new: C) -> None:
        with self._lock:
            self._value = new
            self._updated_mono = time.monotonic()
            self._writes += 1

    @property
    def updated_mono(self) -> float | None:
        with self._lock:
            return self._updated_mono

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            value = self._value
            updated = self._updated_mono
            writes = self._writes
        return {
            "available": value is not None,
            "writes": writes,
            "age_s": None if updated is None else round(time.monotonic() - updated, 3),
            "config": None if value is None else value.model_dump(mode="json"),
        }
