#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import argparse
import curses
import locale
import logging
import signal
import sys
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pyperclip
from pygments import lex
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.token import Token
from pygments.util import ClassNotFound
from wcwidth import wcwidth, wcswidth

from capture_pad.capture import CaptureController
from capture_pad.config import load_config, setup_logging
from capture_pad.host import HostError
from capture_pad.keybinder import KeyBinder, describe_keys
from capture_pad.workspace import Buffer, Window, Workspace

logger = logging.getLogger(__name__)
KEY_LOGGER = logging.getLogger("capture_pad.keyevents")

_BACKSPACE_CHARS = (8, 127)
_ENTER_CHARS = (10, 13)


def hex_to_xterm(hex_color: str) -> int:
    """
    Converts a hex color string to the nearest xterm-256 color index.
    """
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6:
        return 255

    try:
        r, g, b = int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)
    except ValueError:
        return 255

    if r == g == b:
        if r < 8:
            return 16
        if r > 248:
            return 231
        return round(((r - 8) / 247) * 24) + 232

    color_index = 16
    color_index += 36 * round(r / 255 * 5)
    color_index += 6 * round(g / 255 * 5)
    color_index += round(b / 255 * 5)
    return int(color_index)


def truncate_string(s: str, max_width: int) -> str:
    """Cuts ``s`` so that its terminal display width does not exceed ``max_width``."""
    result: List[str] = []
    width = 0
    for ch in s:
        w = max(wcwidth(ch), 0)
        if width + w > max_width:
            break
        result.append(ch)
        width += w
    return "".join(result)


def display_width(text: str) -> int:
    width = wcswidth(text)
    if width < 0:
        return sum(max(wcwidth(ch), 0) for ch in text)
    return width


class CapturePadApp:
    """
    curses front end over a `Workspace` with one `CaptureController`.

    Windows are stacked vertically and share the screen above the status bar.
    Each window ends in a mode line; a buffer with a header (the capture
    surface) shows it on its first row.

    Key dispatch order: the focused buffer's keymap and the global actions
    (multi-key chords included), then editing keys, then printable text.
    """

    def __init__(self, stdscr: "curses.window", config: Dict[str, Any],
                 workspace: Optional[Workspace] = None) -> None:
        self.stdscr = stdscr
        self.config = config
        self.workspace = workspace or Workspace()
        if self.workspace.confirm_handler is None:
            self.workspace.confirm_handler = self.ask_yes_no

        self.keybinder = KeyBinder(config)
        self.controller = CaptureController(self.workspace, self.keybinder, config)

        self.status_message = "Ready"
        self.colors: Dict[str, int] = {}
        self.running = True
        self.exit_when_capture_closes = False
        self.use_clipboard = False
        self.compose_result: Optional[str] = None
        self._lexers: Dict[str, Lexer] = {}

        self.tab_size = int(config.get("editor", {}).get("tab_size", 4))
        self.use_system_clipboard = bool(config.get("editor", {}).get("use_system_clipboard", True))
        self.global_table = self.keybinder.bindings_for({
            "open_capture": self.open_capture,
            "save_file": self.save_file,
            "quit": self.quit,
            "other_window": self.other_window,
            "cancel_operation": self.cancel_operation,
        })
        logger.info("CapturePadApp initialized.")

    # ───────────────────── Curses runtime ─────────────────────
    def init_curses(self) -> None:
        self.stdscr.keypad(True)
        curses.raw()
        curses.noecho()
        try:
            curses.curs_set(1)
        except curses.error:
            logger.debug("Terminal cannot change cursor visibility.")
        self.init_colors()

    def init_colors(self) -> None:
        """
        Builds curses color pairs from the ``[colors]`` section, mapping hex
        values to the nearest xterm-256 entry. Terminals with fewer colors get
        plain attributes.
        """
        if not curses.has_colors() or curses.COLORS < 256:
            logger.warning("Terminal does not support 256 colors. Using default attributes.")
            self.colors = {
                "comment": curses.A_DIM, "keyword": curses.A_BOLD,
                "string": curses.A_NORMAL, "number": curses.A_NORMAL,
                "function": curses.A_BOLD, "status": curses.A_REVERSE,
                "header": curses.A_BOLD | curses.A_REVERSE, "default": curses.A_NORMAL,
            }
            return

        curses.start_color()
        curses.use_default_colors()
        pair_id = 1
        for name, hex_code in self.config.get("colors", {}).items():
            if pair_id >= curses.COLOR_PAIRS:
                logger.warning("Ran out of available color pairs.")
                break
            try:
                curses.init_pair(pair_id, hex_to_xterm(str(hex_code)), -1)
                self.colors[name] = curses.color_pair(pair_id)
                pair_id += 1
            except curses.error as e:
                logger.error(f"Failed to initialize color for '{name}' with hex '{hex_code}': {e}")
                self.colors[name] = curses.A_NORMAL
        self.colors["status"] = self.colors.get("status", curses.A_NORMAL) | curses.A_REVERSE
        self.colors["header"] = self.colors.get("header", curses.A_NORMAL) | curses.A_BOLD

    def _set_status_message(self, message: str) -> None:
        if message != self.status_message:
            logger.debug(f"Status message: '{message}'")
        self.status_message = message

    # ───────────────────── Actions ─────────────────────
    def open_capture(self, text: Optional[str] = None,
                     on_save: Optional[Callable[[str], None]] = None) -> bool:
        if on_save is None and self.exit_when_capture_closes:
            on_save = self._store_compose_result
        elif on_save is None and self.use_clipboard:
            on_save = self._copy_to_clipboard
        if self.controller.open(text, on_save=on_save):
            self._set_status_message(self.controller.banner())
        else:
            self._set_status_message("Capture buffer kept.")
        return True

    def start_compose(self, initial_text: Optional[str] = None) -> None:
        """Opens a capture whose text becomes the program's output; the app exits when it closes."""
        self.exit_when_capture_closes = True
        self.open_capture(initial_text, on_save=self._store_compose_result)

    def _store_compose_result(self, text: str) -> None:
        self.compose_result = text
        if self.use_clipboard and self.use_system_clipboard:
            self._copy_to_clipboard(text)

    def _copy_to_clipboard(self, text: str) -> None:
        if not self.use_system_clipboard:
            logger.info("System clipboard disabled in config; inserting captured text.")
            self.workspace.insert_at_point(text)
            self._set_status_message("System clipboard disabled - text inserted instead.")
            return
        try:
            pyperclip.copy(text)
            self._set_status_message(f"Copied {len(text)} characters to the clipboard.")
        except pyperclip.PyperclipException as e:
            logger.warning(f"System clipboard unavailable via pyperclip: {e}. Inserting text instead.")
            self.workspace.insert_at_point(text)
            self._set_status_message("Clipboard unavailable - text inserted instead.")

    def save_file(self) -> bool:
        path = self.workspace.save_file()
        self._set_status_message(f"Saved '{path}'")
        return True

    def quit(self) -> bool:
        if self.controller.is_open and not self.exit_when_capture_closes:
            if not self.ask_yes_no("Capture in progress. Quit anyway? (y/n): "):
                self._set_status_message("Quit cancelled.")
                return True
        modified = [b.name for b in self.workspace.buffers.values() if b.filename and b.modified]
        if modified and not self.ask_yes_no(f"Unsaved changes in {', '.join(modified)}. Quit anyway? (y/n): "):
            self._set_status_message("Quit cancelled.")
            return True
        self.running = False
        return True

    def other_window(self) -> bool:
        self.workspace.other_window()
        return True

    def cancel_operation(self) -> bool:
        self.keybinder.reset()
        self._set_status_message("Cancelled.")
        return True

    # ───────────────────── Input ─────────────────────
    def handle_key(self, key: Union[str, int]) -> bool:
        """
        Processes one key event. Returns True if the screen needs a redraw.

        Errors raised by an action are logged and shown in the status bar;
        they never leave the input loop.
        """
        KEY_LOGGER.debug("handle_key: %r", key)
        table = dict(self.global_table)
        table.update(self.workspace.keymap_for_current())

        try:
            result = self.keybinder.feed(key, table)
            if result.status == "matched":
                result.action()
            elif result.status == "pending":
                self._set_status_message(describe_keys(result.keys) + "-")
            elif len(result.keys) > 1:
                self._set_status_message(f"{describe_keys(result.keys)} is undefined")
            else:
                self._handle_edit_key(key)
        except HostError as e:
            logger.error("Host error while handling %r: %s", key, e)
            self._set_status_message(f"Error: {e}")
        except Exception as e:
            logger.exception("Unhandled error while handling key %r", key)
            self._set_status_message(f"Error (see log): {str(e)[:60]}")

        if self.exit_when_capture_closes and not self.controller.is_open:
            self.running = False
        return True

    def _handle_edit_key(self, key: Union[str, int]) -> None:
        """Editing keys and text. ``get_wch`` gives str for characters and int for special keys."""
        buffer = self.workspace.current_buffer
        if isinstance(key, str) and len(key) > 1:
            self._set_status_message(f"Unhandled input sequence: {key!r}")
            return

        if isinstance(key, str):
            code = ord(key)
            if code in _ENTER_CHARS:
                buffer.newline()
            elif code in _BACKSPACE_CHARS:
                buffer.backspace()
            elif code == 9:
                buffer.insert(" " * self.tab_size)
            elif code >= 32 and code != 127 and wcwidth(key) > 0:
                buffer.insert(key)
            else:
                KEY_LOGGER.debug("Ignored control character: %r", key)
                self._set_status_message(f"Ignored key: {describe_keys((code,))}")
            return

        motions: Dict[int, Callable[[], bool]] = {
            curses.KEY_LEFT: buffer.move_left,
            curses.KEY_RIGHT: buffer.move_right,
            curses.KEY_UP: buffer.move_up,
            curses.KEY_DOWN: buffer.move_down,
            curses.KEY_HOME: buffer.move_home,
            getattr(curses, 'KEY_END', curses.KEY_LL): buffer.move_end,
            curses.KEY_DC: buffer.delete_forward,
            curses.KEY_BACKSPACE: buffer.backspace,
            curses.KEY_ENTER: buffer.newline,
        }
        if key in motions:
            motions[key]()
        elif key != curses.KEY_RESIZE:
            KEY_LOGGER.debug("Unhandled key code: %r", key)
            self._set_status_message(f"Unhandled key code: {key}")

    def get_key_input(self) -> Optional[Union[str, int]]:
        """
        Reads one key. ESC followed at once by a printable key becomes a logical
        ``"alt-<key>"`` string; any other follow-up key is pushed back and ESC
        is returned alone. Returns None when no input arrived.
        """
        try:
            key = self.stdscr.get_wch()
        except curses.error:
            return None
        if key == "\x1b":
            self.stdscr.nodelay(True)
            try:
                follow = self.stdscr.get_wch()
            except curses.error:
                follow = None
            finally:
                self.stdscr.nodelay(False)
            if isinstance(follow, str) and follow.isprintable():
                return f"alt-{follow.lower()}"
            if isinstance(follow, int):
                curses.ungetch(follow)
            elif follow is not None:
                curses.unget_wch(follow)
        return key

    def ask_yes_no(self, question: str) -> bool:
        """Shows ``question`` on the status line and waits for y or n (Esc means no)."""
        logger.debug(f"ask_yes_no: '{question}'")
        height, width = self.stdscr.getmaxyx()
        while True:
            try:
                self.stdscr.move(height - 1, 0)
                self.stdscr.clrtoeol()
                self.stdscr.addstr(height - 1, 0, truncate_string(question, max(0, width - 1)),
                                   self.colors.get("status", curses.A_NORMAL))
                self.stdscr.refresh()
            except curses.error as e:
                logger.debug(f"ask_yes_no: drawing failed: {e}")
            try:
                answer = self.stdscr.get_wch()
            except curses.error:
                continue
            if answer in ("y", "Y"):
                return True
            if answer in ("n", "N", "\x1b", "\x07", 27, 7):
                return False

    # ───────────────────── Drawing ─────────────────────
    def _lexer_for(self, buffer: Buffer) -> Lexer:
        lexer = self._lexers.get(buffer.name)
        if lexer is None:
            lexer = TextLexer()
            if buffer.filename:
                try:
                    lexer = get_lexer_for_filename(buffer.filename, stripnl=False, stripall=False)
                except ClassNotFound:
                    logger.debug(f"No lexer for '{buffer.filename}', using plain text.")
            self._lexers[buffer.name] = lexer
        return lexer

    def _token_attr(self, ttype: Any) -> int:
        default = self.colors.get("default", curses.A_NORMAL)
        for token_type, name in (
                (Token.Comment, "comment"),
                (Token.Literal.String, "string"),
                (Token.Literal.Number, "number"),
                (Token.Keyword, "keyword"),
                (Token.Name.Function, "function"),
                (Token.Name.Class, "function"),
        ):
            if ttype in token_type:
                return self.colors.get(name, default)
        return default

    def highlight_line(self, buffer: Buffer, line: str) -> List[Tuple[str, int]]:
        lexer = self._lexer_for(buffer)
        if isinstance(lexer, TextLexer):
            return [(line, self.colors.get("default", curses.A_NORMAL))]
        segments = []
        for ttype, value in lex(line, lexer):
            value = value.rstrip("\n")
            if value:
                segments.append((value, self._token_attr(ttype)))
        return segments

    def _window_rows(self, text_area_height: int) -> List[Tuple[Window, int, int]]:
        """Splits the text area among windows: (window, top row, height)."""
        count = len(self.workspace.windows)
        base, extra = divmod(text_area_height, count)
        rows, top = [], 0
        for index, window in enumerate(self.workspace.windows):
            height = base + (1 if index < extra else 0)
            rows.append((window, top, height))
            top += height
        return rows

    def _addstr(self, y: int, x: int, text: str, attr: int = 0) -> None:
        try:
            self.stdscr.addstr(y, x, text, attr)
        except curses.error:
            # Writing the bottom-right cell raises even though it succeeds.
            pass

    def draw(self) -> None:
        height, width = self.stdscr.getmaxyx()
        self.stdscr.erase()
        if height < 3 or width < 10:
            self._addstr(0, 0, truncate_string("Window too small", max(0, width - 1)))
            self.stdscr.refresh()
            return

        cursor: Optional[Tuple[int, int]] = None
        for index, (window, top, win_height) in enumerate(self._window_rows(height - 1)):
            position = self._draw_window(window, top, win_height, width, index == self.workspace.selected)
            if position is not None:
                cursor = position

        status = truncate_string(self.status_message, width - 1).ljust(width - 1)
        self._addstr(height - 1, 0, status, self.colors.get("status", curses.A_REVERSE))
        if cursor is not None:
            try:
                self.stdscr.move(*cursor)
            except curses.error:
                logger.debug(f"Cursor position {cursor} is off screen.")
        self.stdscr.refresh()

    def _draw_window(self, window: Window, top: int, win_height: int, width: int,
                     selected: bool) -> Optional[Tuple[int, int]]:
        buffer = self.workspace.buffers.get(window.buffer_name)
        if buffer is None or win_height < 2:
            return None

        text_top = top
        header = self.workspace.header_for(buffer.name)
        if header and win_height >= 3:
            self._addstr(top, 0, truncate_string(header, width - 1).ljust(width - 1),
                         self.colors.get("header", curses.A_BOLD))
            text_top += 1
        text_height = top + win_height - 1 - text_top

        if selected:
            if buffer.row < window.scroll_top:
                window.scroll_top = buffer.row
            elif buffer.row >= window.scroll_top + text_height:
                window.scroll_top = buffer.row - text_height + 1

        for offset in range(text_height):
            line_index = window.scroll_top + offset
            if line_index >= len(buffer.lines):
                break
            x = 0
            for segment, attr in self.highlight_line(buffer, buffer.lines[line_index]):
                if x >= width - 1:
                    break
                piece = truncate_string(segment, width - 1 - x)
                self._addstr(text_top + offset, x, piece, attr)
                x += display_width(piece)

        flag = "**" if buffer.modified and buffer.filename else "--"
        mode_line = f"{flag} {buffer.name}  L{buffer.row + 1}:C{buffer.col}"
        attr = self.colors.get("status", curses.A_REVERSE)
        if not selected:
            attr |= curses.A_DIM
        self._addstr(top + win_height - 1, 0, truncate_string(mode_line, width - 1).ljust(width - 1), attr)

        if not selected:
            return None
        cursor_x = display_width(buffer.lines[buffer.row][:buffer.col])
        return text_top + buffer.row - window.scroll_top, min(cursor_x, width - 2)

    # ───────────────────── Main loop ─────────────────────
    def run(self) -> None:
        """
        Main event loop: read a key, dispatch it, redraw. Runs until `quit`
        (or, in compose mode, until the capture closes).
        """
        logger.info("Main loop started.")
        self.stdscr.timeout(100)
        try:
            target_fps = int(self.config.get("editor", {}).get("target_fps", 30))
            if target_fps <= 0:
                target_fps = 30
        except (ValueError, TypeError):
            target_fps = 30
        min_frame_time = 1.0 / target_fps

        needs_redraw = True
        last_draw_time = 0.0
        while self.running:
            try:
                key = self.get_key_input()
                if key is not None and self.handle_key(key):
                    needs_redraw = True
                if not self.running:
                    break
                now = time.monotonic()
                if needs_redraw and now - last_draw_time >= min_frame_time:
                    self.draw()
                    last_draw_time = now
                    needs_redraw = False
            except KeyboardInterrupt:
                logger.info("KeyboardInterrupt received in main loop, exiting.")
                self.running = False
            except curses.error as e:
                logger.error("A curses error occurred in the main loop: %s", e, exc_info=True)
                self._set_status_message(f"UI Error: {e}")
                needs_redraw = True
        logger.info("Main loop finished.")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capture-pad",
        description="Terminal editor with a capture buffer for composing longer input.",
    )
    parser.add_argument("file", nargs="?", help="file to edit")
    parser.add_argument("--config", help="path to a TOML configuration file")
    parser.add_argument("--compose", action="store_true",
                        help="start in a capture buffer and print the saved text to stdout")
    parser.add_argument("--initial", default=None, help="seed text for the capture buffer")
    parser.add_argument("--clipboard", action="store_true",
                        help="deliver captured text to the system clipboard")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the ``capture-pad`` command. Returns the exit status."""
    args = build_arg_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config)
    logger.info("capture-pad starting up...")

    if hasattr(signal, 'SIGTSTP'):
        try:
            signal.signal(signal.SIGTSTP, signal.SIG_IGN)
        except (ValueError, OSError) as e:
            logger.warning(f"Couldn't ignore SIGTSTP: {e}")
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error as e_locale:
        logger.error(f"Failed to set system locale: {e_locale}.")

    def _main_curses(stdscr: "curses.window") -> CapturePadApp:
        app = CapturePadApp(stdscr, config)
        app.use_clipboard = args.clipboard
        app.init_curses()
        if args.file:
            try:
                app.workspace.open_file(args.file)
            except HostError as e:
                logger.error(f"Could not open '{args.file}': {e}")
                app._set_status_message(f"Error: {e}")
        if args.compose:
            app.start_compose(args.initial)
        app.run()
        return app

    try:
        app = curses.wrapper(_main_curses)
    except Exception:
        logger.critical("Unhandled exception during editor execution:", exc_info=True)
        print("\nCRITICAL ERROR: An unexpected error occurred. See 'capture_pad.log' for details.",
              file=sys.stderr)
        return 2

    logger.info("capture-pad shut down gracefully.")
    if args.compose:
        if app.compose_result is None:
            return 1
        sys.stdout.write(app.compose_result)
        if app.compose_result and not app.compose_result.endswith("\n"):
            sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
