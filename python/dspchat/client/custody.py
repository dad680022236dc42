"""Single-slot custody cell for the outbound half of the connection."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .network import DspWriter


RELEASE_ATTEMPTS = 3
RELEASE_BACKOFF = 0.05

LOG = logging.getLogger("dspchat.app")


class WriterBusy(RuntimeError):
    pass


class CustodyError(RuntimeError):
    pass


class ReleaseTimeout(CustodyError):
    pass


class WriterCustody:
    """Holds the writer while no send is in flight.

    ``acquire`` never blocks: a send attempt either takes the writer or is
    rejected with :class:`WriterBusy`. ``release`` always puts it back.
    """

    def __init__(
        self,
        writer: "DspWriter",
        attempts: int = RELEASE_ATTEMPTS,
        backoff: float = RELEASE_BACKOFF,
    ) -> None:
        self._lock = threading.Lock()
        self._writer: Optional["DspWriter"] = writer
        self._attempts = max(1, attempts)
        self._backoff = backoff

    def acquire(self) -> "DspWriter":
        if not self._lock.acquire(blocking=False):
            raise WriterBusy("another message is about to go in-transit")
        try:
            if self._writer is None:
                raise WriterBusy("another message might already be in-transit")
            writer, self._writer = self._writer, None
            return writer
        finally:
            self._lock.release()

    def release(self, writer: "DspWriter", blocking: bool = False) -> None:
        """Park ``writer`` back in the cell.

        Without ``blocking`` the cell lock is retried with growing timeouts and
        :class:`ReleaseTimeout` is raised once the attempts run out. With
        ``blocking`` the call waits for the lock, which is only ever held for
        a slot swap.
        """

        if blocking:
            with self._lock:
                self._park(writer)
            return
        for attempt in range(1, self._attempts + 1):
            if not self._lock.acquire(timeout=self._backoff * attempt):
                LOG.debug("Writer custody busy, retrying release (attempt %d)", attempt)
                continue
            try:
                self._park(writer)
                return
            finally:
                self._lock.release()
        raise ReleaseTimeout(f"could not return writer after {self._attempts} attempts")

    def _park(self, writer: "DspWriter") -> None:
        if self._writer is not None:
            raise CustodyError("writer returned while another one is parked")
        self._writer = writer

    @property
    def idle(self) -> bool:
        return self._writer is not None

    def peek(self) -> Optional["DspWriter"]:
        return self._writer
