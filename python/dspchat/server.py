"""Asyncio DSP relay server for local development."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from .lobby import ChatSession, Lobby
from .protocol import (
    MAX_FRAME,
    ConnectionClosed,
    JoinMessage,
    ParseError,
    Payload,
    ProtocolError,
    QuitMessage,
    TextMessage,
    read_payload,
)


LOG = logging.getLogger("dspchat.relay")


class RelayServer:
    def __init__(self, host: str = "127.0.0.1", port: int = 1337) -> None:
        self.host = host
        self.port = port
        self.lobby = Lobby()
        self._server: Optional[asyncio.base_events.Server] = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port, limit=MAX_FRAME)
        addr = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        LOG.info("Relay listening on %s", addr)

    @property
    def bound_port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        async with self._server:
            await self._server.serve_forever()

    async def close(self) -> None:
        for session in list(self.lobby.sessions.values()):
            session.writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        LOG.info("Connection from %s", peer)

        session: Optional[ChatSession] = None
        try:
            session = await self._handshake(reader, writer)
            if session is None:
                return
            LOG.info("Client %s joined as %s", peer, session.username)
            await self.lobby.broadcast(Payload(username=session.username, message=JoinMessage()))
            await self._session_loop(session)
        except ParseError as exc:
            LOG.warning("Protocol error with %s: %s", peer, exc)
            try:
                await self.lobby.send_error(writer, "malformed frame")
            except ProtocolError:
                pass
        except ConnectionClosed:
            LOG.info("Client %s closed connection", peer)
        except ProtocolError as exc:
            LOG.info("Client %s dropped: %s", peer, exc)
        finally:
            if session and session.username in self.lobby.sessions:
                await self.lobby.remove_session(session)
                await self.lobby.broadcast(Payload(username=session.username, message=QuitMessage()))
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def _handshake(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> Optional[ChatSession]:
        payload = await read_payload(reader)
        if not isinstance(payload.message, JoinMessage):
            await self.lobby.send_error(writer, "join required")
            return None

        session = ChatSession(username=payload.username, reader=reader, writer=writer)
        if not await self.lobby.add_session(session):
            await self.lobby.send_error(writer, f"username {payload.username} is taken")
            return None
        return session

    async def _session_loop(self, session: ChatSession) -> None:
        while True:
            payload = await read_payload(session.reader)
            message = payload.message

            if payload.username != session.username:
                await self.lobby.send_error(session.writer, "username mismatch")
            elif isinstance(message, TextMessage):
                await self.lobby.broadcast(payload)
            elif isinstance(message, QuitMessage):
                break
            else:
                await self.lobby.send_error(session.writer, f"unexpected {message.type.value}")


async def amain(args: argparse.Namespace) -> None:
    server = RelayServer(host=args.host, port=args.port)
    await server.start()
    await server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="DSP relay server for local testing")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=1337)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        asyncio.run(amain(args))
    except KeyboardInterrupt:
        LOG.info("Relay shutting down")


if __name__ == "__main__":
    main()
