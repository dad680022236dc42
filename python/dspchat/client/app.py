"""Entry point for the terminal chat client."""

from __future__ import annotations

import argparse
import logging
import threading
from typing import Optional

from ..config import ClientConfig, ConfigError
from ..protocol import ProtocolError
from .chatlog import ChatLog, install
from .events import EventBus, EventBusClosed, Rerender
from .keyboard import KeyboardInput
from .network import DspConnection, NetworkClient, receive_payloads
from .state import AppState
from .tui import ScreenRenderer


LOG = logging.getLogger("dspchat.app")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ChatApp:
    def __init__(
        self,
        config: ClientConfig,
        network: NetworkClient,
        connection: DspConnection,
        chat_log: Optional[ChatLog] = None,
    ) -> None:
        self.config = config
        self.network = network
        self.bus = EventBus()
        self.chat_log = chat_log or ChatLog()
        self.chat_log.set_notify(self._notify_rerender)
        self.state = AppState(config, connection.writer, self.bus, network.submit)
        self._reader = connection.reader
        self._consumer_thread = threading.get_ident()

    def _notify_rerender(self) -> None:
        # the consumer redraws after every event it handles
        if threading.get_ident() == self._consumer_thread:
            return
        try:
            self.bus.post(Rerender())
        except EventBusClosed:
            pass

    def start(self, keyboard: KeyboardInput) -> None:
        threading.Thread(target=keyboard.run, args=(self.bus,), name="dspchat-input", daemon=True).start()
        self.network.submit(receive_payloads(self._reader, self.bus))

    def run(self, keyboard: Optional[KeyboardInput] = None) -> None:
        keyboard = keyboard or KeyboardInput()
        self._consumer_thread = threading.get_ident()
        with keyboard.attach(), ScreenRenderer(self.state, self.chat_log) as renderer:
            self.start(keyboard)
            self.state.run(renderer.refresh)
        self.chat_log.set_notify(None)
        self.network.close(self.state.custody.peek())


def configure_logging(log_level: str, log_file: Optional[str]) -> ChatLog:
    level = getattr(logging, log_level.upper(), logging.INFO)
    if log_file:
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT)
    else:
        # Keeps logging's last-resort stderr handler off the screen.
        logging.getLogger().addHandler(logging.NullHandler())
    logging.getLogger("dspchat").setLevel(min(level, logging.INFO))
    return install(ChatLog(level=logging.INFO))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Terminal chat client for DSP servers")
    parser.add_argument("-s", "--server-address", default=None, help="server HOST:PORT")
    parser.add_argument("-u", "--username", default=None, help="username to join with")
    parser.add_argument("-l", "--log-file", default=None, help="write diagnostic logs to this file")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        config = ClientConfig.from_args(args)
    except ConfigError as exc:
        raise SystemExit(f"dspchat: {exc}") from exc

    chat_log = configure_logging(args.log_level, args.log_file)

    network = NetworkClient()
    try:
        connection = network.connect(config)
    except ProtocolError as exc:
        network.close()
        raise SystemExit(f"dspchat: {exc}") from exc

    ChatApp(config, network, connection, chat_log).run()


if __name__ == "__main__":
    main()
