"""Application events and the single-consumer queue that merges them."""

from __future__ import annotations

import enum
import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional, Union

from ..protocol import Payload

if TYPE_CHECKING:
    from .network import DspWriter


class EventBusClosed(RuntimeError):
    pass


class Key(enum.Enum):
    CHAR = "char"
    TAB = "tab"
    ENTER = "enter"
    BACKSPACE = "backspace"
    ESC = "esc"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    INTERRUPT = "interrupt"


@dataclass(frozen=True)
class KeyEvent:
    key: Key
    char: str = ""

    @classmethod
    def of(cls, char: str) -> "KeyEvent":
        return cls(Key.CHAR, char)


@dataclass(frozen=True)
class UiEvent:
    key: KeyEvent


@dataclass(frozen=True)
class PayloadReceived:
    payload: Payload


@dataclass(frozen=True)
class PayloadSent:
    """Send completion; hands the writer back to the state machine."""

    writer: "DspWriter"
    payload: Payload
    error: Optional[str] = None


@dataclass(frozen=True)
class FatalError:
    message: str


@dataclass(frozen=True)
class Rerender:
    pass


AppEvent = Union[UiEvent, PayloadReceived, PayloadSent, FatalError, Rerender]


class EventBus:
    """Thread-safe ordered queue with many producers and one consumer."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[AppEvent]" = queue.Queue()
        self._closed = threading.Event()

    def post(self, event: AppEvent) -> None:
        if self._closed.is_set():
            raise EventBusClosed("event consumer is gone")
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> AppEvent:
        return self._queue.get(True, timeout)

    def __iter__(self) -> Iterator[AppEvent]:
        while not self._closed.is_set():
            yield self._queue.get()

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()
