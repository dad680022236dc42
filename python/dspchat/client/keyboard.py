"""Blocking terminal key capture built on prompt_toolkit's input layer."""

from __future__ import annotations

import contextlib
import logging
import select
from typing import Iterator, List, Optional

from prompt_toolkit.input import Input, create_input
from prompt_toolkit.key_binding.key_processor import KeyPress
from prompt_toolkit.keys import Keys

from .events import EventBus, EventBusClosed, Key, KeyEvent, UiEvent


LOG = logging.getLogger("dspchat.input")

_SPECIAL_KEYS = {
    Keys.ControlI: Key.TAB,
    Keys.ControlM: Key.ENTER,
    Keys.ControlJ: Key.ENTER,
    Keys.ControlH: Key.BACKSPACE,
    Keys.Escape: Key.ESC,
    Keys.PageUp: Key.PAGE_UP,
    Keys.PageDown: Key.PAGE_DOWN,
    Keys.ControlC: Key.INTERRUPT,
}


def translate(press: KeyPress) -> Optional[KeyEvent]:
    """Map a prompt_toolkit key press to an application key event."""

    if isinstance(press.key, Keys):
        key = _SPECIAL_KEYS.get(press.key)
        return KeyEvent(key) if key is not None else None
    if len(press.key) == 1 and press.key.isprintable():
        return KeyEvent.of(press.key)
    return None


class KeyboardInput:
    """Reads raw key presses from the terminal and posts them as UI events."""

    def __init__(self, source: Optional[Input] = None) -> None:
        self._input = source or create_input()

    @contextlib.contextmanager
    def attach(self) -> Iterator[None]:
        # Entered on the main thread so the terminal is restored on exit
        # even though the capture thread is abandoned.
        with self._input.raw_mode():
            yield

    def read_events(self) -> List[KeyEvent]:
        select.select([self._input.fileno()], [], [])
        presses = self._input.read_keys() + self._input.flush_keys()
        events = []
        for press in presses:
            event = translate(press)
            if event is not None:
                events.append(event)
        return events

    def run(self, bus: EventBus) -> None:
        LOG.debug("Starting input thread")
        try:
            while not self._input.closed:
                for event in self.read_events():
                    bus.post(UiEvent(event))
        except EventBusClosed:
            LOG.debug("Event consumer gone, stopping input thread")
        except OSError as exc:
            LOG.warning("Terminal input stopped: %s", exc)
