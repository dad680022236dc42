"""Session registry and fan-out for the DSP relay server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict

from .protocol import ErrorMessage, Payload, write_payload


SERVER_NAME = "server"

LOG = logging.getLogger("dspchat.relay")


@dataclass
class ChatSession:
    username: str
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter


class Lobby:
    def __init__(self) -> None:
        self.sessions: Dict[str, ChatSession] = {}
        self._lock = asyncio.Lock()

    async def add_session(self, session: ChatSession) -> bool:
        async with self._lock:
            if session.username in self.sessions or session.username == SERVER_NAME:
                return False
            self.sessions[session.username] = session
            return True

    async def remove_session(self, session: ChatSession) -> None:
        async with self._lock:
            if self.sessions.get(session.username) is session:
                del self.sessions[session.username]

    async def broadcast(self, payload: Payload) -> None:
        targets = list(self.sessions.values())
        results = await asyncio.gather(
            *(write_payload(session.writer, payload) for session in targets),
            return_exceptions=True,
        )
        for session, result in zip(targets, results):
            if isinstance(result, Exception):
                LOG.info("Dropping frame for %s: %s", session.username, result)

    async def send_error(self, writer: asyncio.StreamWriter, text: str) -> None:
        await write_payload(writer, Payload(username=SERVER_NAME, message=ErrorMessage(text=text)))
