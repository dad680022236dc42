"""Logging handler that keeps recent records for the chat view."""

from __future__ import annotations

import collections
import logging
from typing import Callable, Deque, List, Optional


DEFAULT_CAPACITY = 2000


class ChatLog(logging.Handler):
    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        level: int = logging.INFO,
        notify: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__(level)
        self._records: Deque[logging.LogRecord] = collections.deque(maxlen=capacity)
        self._notify = notify
        self.revision = 0

    def set_notify(self, notify: Optional[Callable[[], None]]) -> None:
        self._notify = notify

    def emit(self, record: logging.LogRecord) -> None:
        # handle() already holds self.lock here
        self._records.append(record)
        self.revision += 1
        if self._notify is not None:
            try:
                self._notify()
            except Exception:
                self.handleError(record)

    def records(self) -> List[logging.LogRecord]:
        with self.lock:
            return list(self._records)

    def messages(self) -> List[str]:
        return [record.getMessage() for record in self.records()]


def install(chat_log: ChatLog, logger_name: str = "dspchat") -> ChatLog:
    logger = logging.getLogger(logger_name)
    logger.addHandler(chat_log)
    if logger.level == logging.NOTSET or logger.level > chat_log.level:
        logger.setLevel(chat_log.level)
    return chat_log
