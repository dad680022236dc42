from __future__ import annotations

import io
import logging

from rich.console import Console

from dspchat.client.events import EventBus
from dspchat.client.state import AppState
from dspchat.client.tui import THEME, ScreenRenderer, format_record, record_rows, render_screen, visible_window


def _console(width=80, height=24):
    return Console(file=io.StringIO(), width=width, height=height, theme=THEME, color_system=None)


def test_visible_window_follows_tail():
    assert visible_window(total=100, height=10, scroll_pages=0) == (90, 100)
    assert visible_window(total=100, height=10, scroll_pages=2) == (70, 80)
    assert visible_window(total=5, height=10, scroll_pages=0) == (0, 5)


def test_visible_window_clamps_to_oldest_page():
    assert visible_window(total=25, height=10, scroll_pages=9) == (0, 10)


def test_format_record_abbreviates_level():
    record = logging.LogRecord("dspchat.chat", logging.WARNING, __file__, 1, "careful %s", ("bob",), None)
    text = format_record(record)
    assert " W chat careful bob" in text.plain


def test_screen_shows_draft_and_chat(config, writer, chat_log):
    state = AppState(config, writer, EventBus(), lambda coro: coro.close())
    state.active_message = "hello"
    logging.getLogger("dspchat.chat").info("[bob] hi alice")

    console = _console()
    console.print(render_screen(state, chat_log, 80, 24))
    output = console.file.getvalue()

    assert "Server chat: 127.0.0.1:1337" in output
    assert "[alice]" in output
    assert "hello" in output
    assert "[bob] hi alice" in output
    assert "Tab: Switch state" in output


def test_narrow_screen_hides_help(config, writer, chat_log):
    state = AppState(config, writer, EventBus(), lambda coro: coro.close())
    console = _console(width=40)
    console.print(render_screen(state, chat_log, 40, 24))
    assert "Tab: Switch state" not in console.file.getvalue()


def test_renderer_redraws_only_on_change(config, writer, chat_log):
    state = AppState(config, writer, EventBus(), lambda coro: coro.close())
    renderer = ScreenRenderer(state, chat_log, console=_console())

    assert renderer.refresh() is True
    assert renderer.refresh() is False
    state.add_active_message("x")
    assert renderer.refresh() is True
    logging.getLogger("dspchat.chat").info("new line")
    assert renderer.refresh() is True
    assert renderer.refresh(force=True) is True


def test_long_lines_do_not_push_newest_off_screen(config, writer, chat_log):
    state = AppState(config, writer, EventBus(), lambda coro: coro.close())
    chat = logging.getLogger("dspchat.chat")
    for index in range(30):
        chat.info("line%02d %s", index, "x" * 95)
    chat.info("[bob] NEWEST")

    console = _console()
    console.print(render_screen(state, chat_log, 80, 24))
    output = console.file.getvalue()

    assert "[bob] NEWEST" in output
    assert "line29" in output
    assert "line17" in output
    assert "line16" not in output


def test_multiline_record_takes_one_row_per_line(chat_log):
    logging.getLogger("dspchat.chat").info("[bob] first\nsecond")

    (record,) = chat_log.records()
    rows = record_rows(record)
    assert len(rows) == 2
    assert rows[0].plain.endswith(" chat [bob] first")
    assert rows[1].plain == "second"
    assert all(row.no_wrap for row in rows)
