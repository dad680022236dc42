"""Networking helpers that bridge the asyncio connection with the UI thread."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Any, Coroutine, Optional

from ..config import ClientConfig
from ..protocol import MAX_FRAME, JoinMessage, Payload, ProtocolError, TransportError, read_payload, write_payload
from .events import EventBus, EventBusClosed, FatalError, PayloadReceived


LOG = logging.getLogger("dspchat.connection")


class DspReader:
    """Read half of the connection; owned by the inbound task."""

    def __init__(self, stream: asyncio.StreamReader) -> None:
        self._stream = stream

    async def read(self) -> Payload:
        return await read_payload(self._stream)


class DspWriter:
    """Write half of the connection; moved around by writer custody."""

    def __init__(self, stream: asyncio.StreamWriter) -> None:
        self._stream = stream

    async def write(self, payload: Payload) -> None:
        await write_payload(self._stream, payload)

    async def close(self) -> None:
        self._stream.close()
        try:
            await self._stream.wait_closed()
        except OSError:
            pass


@dataclass
class DspConnection:
    reader: DspReader
    writer: DspWriter


async def open_connection(config: ClientConfig) -> DspConnection:
    """Connect to the server and send the JOIN handshake."""

    LOG.debug("Connecting to %s...", config.server_address)
    try:
        stream_reader, stream_writer = await asyncio.open_connection(config.host, config.port, limit=MAX_FRAME)
    except OSError as exc:
        raise TransportError(f"failed to connect to DSP server at {config.server_address!r}: {exc}") from exc
    LOG.debug("Connected!")

    connection = DspConnection(reader=DspReader(stream_reader), writer=DspWriter(stream_writer))
    await connection.writer.write(Payload(username=config.username, message=JoinMessage()))
    LOG.debug("Joined as %s", config.username)
    return connection


async def receive_payloads(reader: DspReader, bus: EventBus) -> None:
    """Post every inbound payload to the bus until the stream fails."""

    try:
        while True:
            payload = await reader.read()
            bus.post(PayloadReceived(payload))
    except ProtocolError as exc:
        LOG.debug("Inbound loop stopped: %s", exc)
        try:
            bus.post(FatalError(f"Connection closed, you need to restart the client: {exc}"))
        except EventBusClosed:
            pass
    except EventBusClosed:
        LOG.debug("Event consumer gone, stopping inbound loop")


class NetworkClient:
    """Runs an asyncio event loop on a daemon thread for network tasks."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="dspchat-network", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def connect(self, config: ClientConfig) -> DspConnection:
        self.start()
        fut = asyncio.run_coroutine_threadsafe(open_connection(config), self._loop)
        return fut.result()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> "concurrent.futures.Future[Any]":
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def close(self, writer: Optional[DspWriter] = None, timeout: float = 1.0) -> None:
        if writer is not None and self._thread.is_alive():
            fut = asyncio.run_coroutine_threadsafe(writer.close(), self._loop)
            try:
                fut.result(timeout)
            except (concurrent.futures.TimeoutError, OSError) as exc:
                LOG.debug("Writer did not close cleanly: %s", exc)
        self._loop.call_soon_threadsafe(self._loop.stop)
