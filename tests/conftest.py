from __future__ import annotations

import logging

import pytest

from dspchat.client.chatlog import ChatLog
from dspchat.client.events import EventBus
from dspchat.client.network import DspWriter
from dspchat.config import ClientConfig


class RecordingStream:
    """Stands in for an asyncio StreamWriter and keeps everything written."""

    def __init__(self, fail: bool = False) -> None:
        self.data = bytearray()
        self.fail = fail
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.fail:
            raise ConnectionResetError("connection reset by peer")
        self.data.extend(data)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


@pytest.fixture
def stream():
    return RecordingStream()


@pytest.fixture
def writer(stream):
    return DspWriter(stream)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def config():
    return ClientConfig(server_address="127.0.0.1:1337", username="alice")


@pytest.fixture
def chat_log():
    logger = logging.getLogger("dspchat")
    previous = logger.level
    handler = ChatLog(level=logging.INFO)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous)
