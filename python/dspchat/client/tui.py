"""Rich terminal front-end for the chat client."""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from .chatlog import ChatLog
from .state import AppState


TABS_HEIGHT = 3
PROMPT_HEIGHT = 3
HELP_HEIGHT = 2
MIN_HELP_WIDTH = 40

THEME = Theme({
    "log.error": "italic red",
    "log.warning": "italic yellow",
    "log.info": "white",
    "log.debug": "italic grey62",
    "tab.selected": "reverse",
    "help": "grey62",
})

LEVEL_ABBREVIATIONS = {
    logging.CRITICAL: "C",
    logging.ERROR: "E",
    logging.WARNING: "W",
    logging.INFO: "I",
    logging.DEBUG: "D",
}

HELP_LINES = [
    "Tab: Switch state | Enter: Trigger state",
    "PageUp/Down: Scroll | Esc: Cancel scroll",
]


def _level_style(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "log.error"
    if levelno >= logging.WARNING:
        return "log.warning"
    if levelno >= logging.INFO:
        return "log.info"
    return "log.debug"


def format_record(record: logging.LogRecord) -> Text:
    stamp = time.strftime("%H:%M:%S", time.localtime(record.created))
    level = LEVEL_ABBREVIATIONS.get(record.levelno, record.levelname[:1])
    target = record.name.split(".", 1)[-1]
    return Text(f"{stamp} {level} {target} {record.getMessage()}", style=_level_style(record.levelno))


def record_rows(record: logging.LogRecord) -> List[Text]:
    """Split a record into screen rows that never wrap, one per line of text."""

    rows = list(format_record(record).split("\n"))
    for row in rows:
        row.no_wrap = True
        row.overflow = "ellipsis"
    return rows


def visible_window(total: int, height: int, scroll_pages: int) -> Tuple[int, int]:
    """Return the ``[start, end)`` slice of chat rows shown for a scroll position."""

    height = max(1, height)
    max_offset = max(0, total - height)
    offset = min(scroll_pages * height, max_offset)
    end = total - offset
    return max(0, end - height), end


def _tabs(state: AppState) -> Panel:
    line = Text()
    for index, name in enumerate(state.tab_names):
        if index:
            line.append(" | ")
        line.append(f" {name} ", style="tab.selected" if index == state.selected_tab else "")
    return Panel(line, title="States", box=box.SQUARE)


def _chat(state: AppState, chat_log: ChatLog, height: int) -> Panel:
    rows: List[Text] = [row for record in chat_log.records() for row in record_rows(record)]
    start, end = visible_window(len(rows), height, state.scroll_pages)
    title = f"Server chat: {state.config.server_address}"
    if state.scroll_pages:
        title += " (scrolled)"
    return Panel(Group(*rows[start:end]), title=Text(title), box=box.SQUARE)


def _prompt(state: AppState) -> Panel:
    return Panel(
        Text(state.active_message, style="white", no_wrap=True, overflow="ellipsis"),
        title=Text(f"[{state.config.username}]"),
        box=box.ROUNDED,
        border_style="white",
    )


def render_screen(state: AppState, chat_log: ChatLog, width: int, height: int) -> Layout:
    layout = Layout()
    show_help = width > MIN_HELP_WIDTH
    chat_height = height - TABS_HEIGHT - PROMPT_HEIGHT - (HELP_HEIGHT if show_help else 0) - 2

    parts = [
        Layout(_tabs(state), name="tabs", size=TABS_HEIGHT),
        Layout(_chat(state, chat_log, chat_height), name="chat", ratio=1),
        Layout(_prompt(state), name="prompt", size=PROMPT_HEIGHT),
    ]
    if show_help:
        parts.append(Layout(Text("\n".join(HELP_LINES), style="help", justify="center"), name="help", size=HELP_HEIGHT))
    layout.split_column(*parts)
    return layout


class ScreenRenderer:
    """Redraws the screen whenever the state or the chat log changed."""

    def __init__(self, state: AppState, chat_log: ChatLog, console: Optional[Console] = None) -> None:
        self.state = state
        self.chat_log = chat_log
        self.console = console or Console(theme=THEME)
        self._live: Optional[Live] = None
        self._drawn: Optional[Tuple[int, int, Tuple[int, int]]] = None

    def __enter__(self) -> "ScreenRenderer":
        self._live = Live(console=self.console, screen=True, auto_refresh=False, transient=True)
        self._live.__enter__()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._live is not None:
            self._live.__exit__(*exc_info)
            self._live = None

    def render(self) -> Layout:
        width, height = self.console.size
        return render_screen(self.state, self.chat_log, width, height)

    def refresh(self, force: bool = False) -> bool:
        marker = (self.state.revision, self.chat_log.revision, tuple(self.console.size))
        if not force and marker == self._drawn:
            return False
        self._drawn = marker
        if self._live is not None:
            self._live.update(self.render(), refresh=True)
        return True
