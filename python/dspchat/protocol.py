"""NUL-framed text wire protocol (DSP) shared by the client and relay server."""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Type, Union


ENCODING = "utf-8"
TERMINATOR = b"\0"
MAX_FRAME = 64 * 1024

USERNAME_RE = re.compile(r"[A-Za-z0-9_]{1,32}\Z")
PHRASE_RE = re.compile(r"[A-Za-z0-9]{0,64}\Z")
_FRAME_RE = re.compile(r"(?P<username>[A-Za-z0-9_]{1,32}) (?P<tag>[A-Z]{1,20})(?: (?P<body>.*))?\Z", re.DOTALL)
_CHALLENGE_RE = re.compile(r"(?P<zeros>[0-9]{1,99}) (?P<phrase>[A-Za-z0-9]{0,64})\Z")

MAX_CHALLENGE = 99

LOG = logging.getLogger("dspchat.connection")


class ProtocolError(RuntimeError):
    pass


class ParseError(ProtocolError):
    pass


class ConnectionClosed(ProtocolError):
    pass


class TransportError(ProtocolError):
    pass


class MessageType(str, enum.Enum):
    JOIN = "JOIN"
    QUIT = "QUIT"
    MESSAGE = "MESSAGE"
    CHALLENGE = "CHALLENGE"
    RESCINDED = "RESCINDED"
    RESPONSE = "RESPONSE"
    ERROR = "ERROR"


def _check_text(field: str, value: str) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    if "\0" in value:
        raise ValueError(f"{field} cannot contain the frame terminator")


@dataclass(frozen=True)
class JoinMessage:
    type: ClassVar[MessageType] = MessageType.JOIN


@dataclass(frozen=True)
class QuitMessage:
    type: ClassVar[MessageType] = MessageType.QUIT


@dataclass(frozen=True)
class TextMessage:
    text: str
    type: ClassVar[MessageType] = MessageType.MESSAGE

    def __post_init__(self) -> None:
        _check_text("text", self.text)


@dataclass(frozen=True)
class ChallengeMessage:
    """Rate-limiting puzzle; ``n`` travels as a run of ``n`` zero characters."""

    n: int
    phrase: str = ""
    type: ClassVar[MessageType] = MessageType.CHALLENGE

    def __post_init__(self) -> None:
        if not isinstance(self.n, int) or not 1 <= self.n <= MAX_CHALLENGE:
            raise ValueError(f"challenge difficulty must be between 1 and {MAX_CHALLENGE}")
        if not isinstance(self.phrase, str) or not PHRASE_RE.match(self.phrase):
            raise ValueError("challenge phrase must be up to 64 ASCII letters or digits")


@dataclass(frozen=True)
class RescindedMessage:
    type: ClassVar[MessageType] = MessageType.RESCINDED


@dataclass(frozen=True)
class ResponseMessage:
    phrase: str
    type: ClassVar[MessageType] = MessageType.RESPONSE

    def __post_init__(self) -> None:
        _check_text("phrase", self.phrase)


@dataclass(frozen=True)
class ErrorMessage:
    text: str
    type: ClassVar[MessageType] = MessageType.ERROR

    def __post_init__(self) -> None:
        _check_text("text", self.text)


Message = Union[
    JoinMessage,
    QuitMessage,
    TextMessage,
    ChallengeMessage,
    RescindedMessage,
    ResponseMessage,
    ErrorMessage,
]

MESSAGE_CLASSES: Dict[MessageType, Type[Message]] = {
    MessageType.JOIN: JoinMessage,
    MessageType.QUIT: QuitMessage,
    MessageType.MESSAGE: TextMessage,
    MessageType.CHALLENGE: ChallengeMessage,
    MessageType.RESCINDED: RescindedMessage,
    MessageType.RESPONSE: ResponseMessage,
    MessageType.ERROR: ErrorMessage,
}


def is_valid_username(username: str) -> bool:
    return isinstance(username, str) and USERNAME_RE.match(username) is not None


@dataclass(frozen=True)
class Payload:
    """A username paired with one protocol message."""

    username: str
    message: Message

    def __post_init__(self) -> None:
        if not is_valid_username(self.username):
            raise ValueError(f"invalid username {self.username!r}")
        if type(self.message) not in MESSAGE_CLASSES.values():
            raise ValueError(f"unsupported message {self.message!r}")


def _render_body(message: Message) -> Optional[str]:
    if isinstance(message, (JoinMessage, QuitMessage, RescindedMessage)):
        return None
    if isinstance(message, TextMessage):
        return message.text
    if isinstance(message, ResponseMessage):
        return message.phrase
    if isinstance(message, ErrorMessage):
        return message.text
    if isinstance(message, ChallengeMessage):
        return "0" * message.n + " " + message.phrase
    raise TypeError(f"cannot serialize {message!r}")


def serialize(payload: Payload) -> str:
    """Render a payload as frame text, without the terminator."""

    body = _render_body(payload.message)
    head = f"{payload.username} {payload.message.type.value}"
    return head if body is None else f"{head} {body}"


def encode(payload: Payload) -> bytes:
    """Serialize a payload to bytes with a trailing NUL terminator."""

    return serialize(payload).encode(ENCODING) + TERMINATOR


def _parse_body(message_type: MessageType, body: str) -> Message:
    if message_type in (MessageType.JOIN, MessageType.QUIT, MessageType.RESCINDED):
        if body:
            raise ParseError(f"{message_type.value} takes no arguments")
        return MESSAGE_CLASSES[message_type]()
    if message_type is MessageType.MESSAGE:
        return TextMessage(text=body)
    if message_type is MessageType.RESPONSE:
        return ResponseMessage(phrase=body)
    if message_type is MessageType.ERROR:
        return ErrorMessage(text=body)
    if message_type is MessageType.CHALLENGE:
        match = _CHALLENGE_RE.match(body)
        if match is None:
            raise ParseError("CHALLENGE expects a run of digits, a space and an alphanumeric phrase")
        return ChallengeMessage(n=len(match.group("zeros")), phrase=match.group("phrase"))
    raise ParseError(f"unhandled message type {message_type!r}")


def decode(text: str) -> Payload:
    """Parse frame text (terminator already removed) into a payload."""

    match = _FRAME_RE.match(text)
    if match is None:
        raise ParseError(f"malformed frame {text[:80]!r}")
    try:
        message_type = MessageType(match.group("tag"))
    except ValueError as exc:
        raise ParseError(f"unknown message type {match.group('tag')!r}") from exc
    message = _parse_body(message_type, match.group("body") or "")
    return Payload(username=match.group("username"), message=message)


async def read_payload(reader: asyncio.StreamReader) -> Payload:
    """Read the next decodable frame from an asyncio StreamReader.

    Frames that are not valid UTF-8 are logged and skipped. End of stream
    raises :class:`ConnectionClosed`, a grammar violation :class:`ParseError`.
    """

    while True:
        try:
            raw = await reader.readuntil(TERMINATOR)
        except asyncio.IncompleteReadError as exc:
            raw = exc.partial
        except asyncio.LimitOverrunError as exc:
            raise ParseError(f"frame exceeds {MAX_FRAME} bytes") from exc
        except OSError as exc:
            raise TransportError(f"failed while reading next frame: {exc}") from exc

        if not raw:
            raise ConnectionClosed("reached EOF while reading next frame, assuming connection closed")

        if raw.endswith(TERMINATOR):
            raw = raw[:-1]

        try:
            text = raw.decode(ENCODING)
        except UnicodeDecodeError:
            LOG.warning("Received frame is not valid UTF-8, ignoring")
            continue

        return decode(text)


async def write_payload(writer: asyncio.StreamWriter, payload: Payload) -> None:
    """Write one framed payload to an asyncio StreamWriter and drain it."""

    data = encode(payload)
    try:
        writer.write(data)
        await writer.drain()
    except OSError as exc:
        raise TransportError(f"failed to send payload to socket: {exc}") from exc
