"""Client configuration built from command-line arguments and the environment."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Optional

from .protocol import is_valid_username


DEFAULT_SERVER_ADDRESS = "185.216.203.250:1337"
SERVER_ADDRESS_ENV = "DSP_SERVER_ADDRESS"
USERNAME_ENV = "DSP_USERNAME"


class ConfigError(ValueError):
    pass


def split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host:
        raise ConfigError(f"server address must look like HOST:PORT, got {address!r}")
    try:
        port_number = int(port)
    except ValueError as exc:
        raise ConfigError(f"invalid port in server address {address!r}") from exc
    if not 0 < port_number < 65536:
        raise ConfigError(f"port out of range in server address {address!r}")
    return host.strip("[]"), port_number


@dataclass(frozen=True)
class ClientConfig:
    server_address: str
    username: str

    def __post_init__(self) -> None:
        split_address(self.server_address)
        if not is_valid_username(self.username):
            raise ConfigError(
                f"invalid username {self.username!r}: use 1-32 letters, digits or underscores"
            )

    @property
    def host(self) -> str:
        return split_address(self.server_address)[0]

    @property
    def port(self) -> int:
        return split_address(self.server_address)[1]

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ClientConfig":
        server_address: Optional[str] = args.server_address or os.environ.get(SERVER_ADDRESS_ENV)
        username: Optional[str] = args.username or os.environ.get(USERNAME_ENV)
        if not username:
            raise ConfigError(f"a username is required (--username or ${USERNAME_ENV})")
        return cls(server_address=server_address or DEFAULT_SERVER_ADDRESS, username=username)
