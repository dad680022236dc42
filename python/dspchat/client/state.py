"""Application state machine driven by the merged event stream."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Callable, Coroutine, List, Optional

from ..config import ClientConfig
from ..protocol import (
    ChallengeMessage,
    ErrorMessage,
    JoinMessage,
    Payload,
    ProtocolError,
    QuitMessage,
    RescindedMessage,
    ResponseMessage,
    TextMessage,
)
from .custody import CustodyError, ReleaseTimeout, WriterBusy, WriterCustody
from .events import (
    AppEvent,
    EventBus,
    EventBusClosed,
    FatalError,
    Key,
    KeyEvent,
    PayloadReceived,
    PayloadSent,
    Rerender,
    UiEvent,
)
from .network import DspWriter


CHAT = logging.getLogger("dspchat.chat")
LOG = logging.getLogger("dspchat.app")

TAB_NAMES = ("Message", "Quit")
MESSAGE_TAB = 0
QUIT_TAB = 1

Spawn = Callable[[Coroutine[Any, Any, Any]], Any]


class AppMode(enum.Enum):
    RUN = "run"
    QUIT = "quit"


class AppState:
    """Owns the writer, the mode and the draft; mutated only by the consumer."""

    def __init__(self, config: ClientConfig, writer: DspWriter, bus: EventBus, spawn: Spawn) -> None:
        self.config = config
        self.custody = WriterCustody(writer)
        self.bus = bus
        self._spawn = spawn
        self.mode = AppMode.RUN
        self.tab_names: List[str] = list(TAB_NAMES)
        self.selected_tab = MESSAGE_TAB
        self.active_message = ""
        self.scroll_pages = 0
        self.revision = 0

    def _changed(self) -> None:
        self.revision += 1

    def request_rerender(self) -> None:
        try:
            self.bus.post(Rerender())
        except EventBusClosed:
            pass

    # Event loop ----------------------------------------------------------

    def run(self, redraw: Optional[Callable[[], None]] = None) -> None:
        """Consume events until the mode becomes QUIT."""

        if redraw is not None:
            redraw()
        try:
            for event in self.bus:
                self.handle_app_event(event)
                if self.mode is AppMode.QUIT:
                    break
                if redraw is not None:
                    redraw()
        finally:
            self.bus.close()

    def handle_app_event(self, event: AppEvent) -> None:
        if isinstance(event, UiEvent):
            self.handle_ui_event(event.key)
        elif isinstance(event, PayloadReceived):
            self.react_to_payload(event.payload)
        elif isinstance(event, PayloadSent):
            self.payload_sent(event.writer, event.payload, event.error)
        elif isinstance(event, FatalError):
            LOG.error("%s", event.message)
            self.follow_chat()
        elif isinstance(event, Rerender):
            pass
        else:
            raise TypeError(f"unhandled app event {event!r}")

    # UI events -----------------------------------------------------------

    def handle_ui_event(self, event: KeyEvent) -> None:
        key = event.key
        on_message_tab = self.selected_tab == MESSAGE_TAB

        if key is Key.TAB:
            self.next_tab()
        elif key is Key.ESC:
            self.follow_chat()
        elif key is Key.PAGE_UP:
            self.scroll_pages += 1
            self._changed()
        elif key is Key.PAGE_DOWN:
            if self.scroll_pages > 0:
                self.scroll_pages -= 1
                self._changed()
        elif key is Key.CHAR and on_message_tab:
            self.add_active_message(event.char)
        elif key is Key.BACKSPACE and on_message_tab:
            self.backspace_active_message()
        elif key is Key.ENTER and on_message_tab:
            self.send_active_message()
        elif key is Key.ENTER and self.selected_tab == QUIT_TAB:
            self.trigger_quit()
        elif key is Key.INTERRUPT:
            self.trigger_quit()

    def next_tab(self) -> None:
        self.selected_tab = (self.selected_tab + 1) % len(self.tab_names)
        self._changed()

    def follow_chat(self) -> None:
        self.scroll_pages = 0
        self._changed()

    def add_active_message(self, char: str) -> None:
        self.active_message += char
        self._changed()

    def backspace_active_message(self) -> None:
        if self.active_message:
            self.active_message = self.active_message[:-1]
            self._changed()

    # Sending -------------------------------------------------------------

    def send_active_message(self) -> bool:
        text = self.active_message
        if not text:
            CHAT.error("Can't send empty message")
            return False
        try:
            payload = Payload(username=self.config.username, message=TextMessage(text=text))
        except ValueError as exc:
            CHAT.error("Can't send message: %s", exc)
            return False
        return self.send_payload(payload)

    def trigger_quit(self) -> bool:
        return self.send_payload(Payload(username=self.config.username, message=QuitMessage()))

    def send_payload(self, payload: Payload) -> bool:
        try:
            writer = self.custody.acquire()
        except WriterBusy as exc:
            CHAT.error("Failed to send message, %s", exc)
            return False
        self._spawn(self._send(writer, payload))
        self._changed()
        return True

    async def _send(self, writer: DspWriter, payload: Payload) -> None:
        error: Optional[str] = None
        try:
            await writer.write(payload)
        except ProtocolError as exc:
            error = f"Failed to send message to server: {exc}"
        except asyncio.CancelledError:
            error = "Failed to send message to server: send was cancelled"
            raise
        except Exception as exc:
            LOG.exception("Unexpected failure while sending %s", payload.message.type.value)
            error = f"Failed to send message to server: {exc}"
        finally:
            self._complete_send(writer, payload, error)

    def _complete_send(self, writer: DspWriter, payload: Payload, error: Optional[str]) -> None:
        try:
            if error is not None:
                self.bus.post(FatalError(error))
            self.bus.post(PayloadSent(writer, payload, error))
        except EventBusClosed:
            LOG.debug("Event consumer gone, dropping send completion")

    def payload_sent(self, writer: DspWriter, payload: Payload, error: Optional[str] = None) -> None:
        try:
            self.custody.release(writer)
        except ReleaseTimeout as exc:
            LOG.warning("%s, waiting for writer custody", exc)
            self.custody.release(writer, blocking=True)
        except CustodyError as exc:
            LOG.error("Failed to return writer to the app: %s", exc)
        message = payload.message
        if isinstance(message, QuitMessage):
            self.mode = AppMode.QUIT
        elif isinstance(message, TextMessage) and error is None:
            self.active_message = ""
        self._changed()

    # Inbound payloads ----------------------------------------------------

    def react_to_payload(self, payload: Payload) -> None:
        username = payload.username
        message = payload.message
        if isinstance(message, JoinMessage):
            CHAT.info("User '%s' has joined the server", username)
        elif isinstance(message, QuitMessage):
            CHAT.info("User '%s' has left the server", username)
        elif isinstance(message, TextMessage):
            CHAT.info("[%s] %s", username, message.text)
        elif isinstance(message, ChallengeMessage):
            CHAT.error(
                "You've received a rate-limiting challenge which is not implemented. "
                "It's left unimplemented, you might get disconnected."
            )
        elif isinstance(message, RescindedMessage):
            CHAT.warning("The challenge has been rescinded, you can chat again")
        elif isinstance(message, ResponseMessage):
            CHAT.warning("You've received a challenge response, this shouldn't happen. Inform server admin.")
        elif isinstance(message, ErrorMessage):
            CHAT.error("Server error: %s", message.text)
        else:
            raise TypeError(f"unhandled message {message!r}")
        self.follow_chat()
        self.request_rerender()
