# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
"""In-memory editor workspace: buffers, windows, layouts and keymaps.

`Workspace` is the concrete `capture_pad.host.Host` used by the terminal
front end and by the tests. It knows nothing about curses.
"""

import logging
import os
import weakref
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import chardet

from capture_pad.host import Action, HostError, KeySequence

logger = logging.getLogger(__name__)

SCRATCH_BUFFER = "*scratch*"


class Buffer:
    """A named text buffer, one string per line, with its own point."""

    def __init__(self, name: str, text: str = "", filename: Optional[str] = None,
                 encoding: str = "utf-8") -> None:
        self.name = name
        self.lines: List[str] = text.split("\n")
        self.row = 0
        self.col = 0
        self.filename = filename
        self.encoding = encoding
        self.modified = False
        self.alive = True
        self.markers: "weakref.WeakSet[Location]" = weakref.WeakSet()

    def __repr__(self) -> str:
        return f"Buffer(name={self.name!r}, lines={len(self.lines)}, point=({self.row},{self.col}))"

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def point(self) -> Tuple[int, int]:
        return self.row, self.col

    def set_point(self, row: int, col: int) -> None:
        """Moves point, clamping to the buffer's current extent."""
        self.row = max(0, min(row, len(self.lines) - 1))
        self.col = max(0, min(col, len(self.lines[self.row])))

    # --- Markers ---------------------------------------------------------
    def _shift_markers_for_insert(self, row: int, col: int, lines_inserted: List[str]) -> None:
        # A marker sitting exactly at the insertion point stays put.
        added_rows = len(lines_inserted) - 1
        for marker in self.markers:
            if marker.row > row:
                marker.row += added_rows
            elif marker.row == row and marker.col > col:
                if added_rows:
                    marker.row = row + added_rows
                    marker.col = len(lines_inserted[-1]) + marker.col - col
                else:
                    marker.col += len(lines_inserted[0])

    def _shift_markers_for_delete(self, start: Tuple[int, int], end: Tuple[int, int]) -> None:
        """Adjusts markers for removal of the text between ``start`` and ``end``."""
        for marker in self.markers:
            position = (marker.row, marker.col)
            if position <= start:
                continue
            if position <= end:
                marker.row, marker.col = start
            elif marker.row == end[0]:
                marker.row, marker.col = start[0], start[1] + marker.col - end[1]
            else:
                marker.row -= end[0] - start[0]

    # --- Editing ---------------------------------------------------------
    def insert(self, text: str) -> bool:
        """
        Inserts ``text`` at point; point ends up right after the inserted text.
        Returns False for empty text (nothing changes).
        """
        if not text:
            return False

        row, col = self.row, self.col
        lines_to_insert = text.split("\n")
        prefix = self.lines[row][:col]
        suffix = self.lines[row][col:]

        self.lines[row] = prefix + lines_to_insert[0]
        for offset, line_content in enumerate(lines_to_insert[1:-1], start=1):
            self.lines.insert(row + offset, line_content)

        if len(lines_to_insert) > 1:
            self.lines.insert(row + len(lines_to_insert) - 1, lines_to_insert[-1] + suffix)
            self.row = row + len(lines_to_insert) - 1
            self.col = len(lines_to_insert[-1])
        else:
            self.lines[row] += suffix
            self.col = col + len(lines_to_insert[0])

        self._shift_markers_for_insert(row, col, lines_to_insert)
        self.modified = True
        return True

    def erase(self) -> None:
        self.lines = [""]
        self.row = self.col = 0
        for marker in self.markers:
            marker.row = marker.col = 0
        self.modified = True

    def newline(self) -> bool:
        return self.insert("\n")

    def backspace(self) -> bool:
        end = (self.row, self.col)
        if self.col > 0:
            line = self.lines[self.row]
            self.lines[self.row] = line[:self.col - 1] + line[self.col:]
            self.col -= 1
        elif self.row > 0:
            previous = self.lines[self.row - 1]
            self.lines[self.row - 1] = previous + self.lines[self.row]
            del self.lines[self.row]
            self.row -= 1
            self.col = len(previous)
        else:
            return False
        self._shift_markers_for_delete((self.row, self.col), end)
        self.modified = True
        return True

    def delete_forward(self) -> bool:
        line = self.lines[self.row]
        if self.col < len(line):
            end = (self.row, self.col + 1)
            self.lines[self.row] = line[:self.col] + line[self.col + 1:]
        elif self.row + 1 < len(self.lines):
            end = (self.row + 1, 0)
            self.lines[self.row] = line + self.lines[self.row + 1]
            del self.lines[self.row + 1]
        else:
            return False
        self._shift_markers_for_delete((self.row, self.col), end)
        self.modified = True
        return True

    # --- Motion ----------------------------------------------------------
    def move_left(self) -> bool:
        if self.col > 0:
            self.col -= 1
        elif self.row > 0:
            self.row -= 1
            self.col = len(self.lines[self.row])
        else:
            return False
        return True

    def move_right(self) -> bool:
        if self.col < len(self.lines[self.row]):
            self.col += 1
        elif self.row + 1 < len(self.lines):
            self.row += 1
            self.col = 0
        else:
            return False
        return True

    def move_up(self) -> bool:
        if self.row == 0:
            return False
        self.row -= 1
        self.col = min(self.col, len(self.lines[self.row]))
        return True

    def move_down(self) -> bool:
        if self.row + 1 >= len(self.lines):
            return False
        self.row += 1
        self.col = min(self.col, len(self.lines[self.row]))
        return True

    def move_home(self) -> bool:
        self.col = 0
        return True

    def move_end(self) -> bool:
        self.col = len(self.lines[self.row])
        return True


@dataclass(eq=False)
class Location:
    """
    A marker: a buffer plus a (row, col) inside it.

    Once registered with `Buffer.markers` (see `Workspace.current_location`)
    it follows edits made before it, so it keeps pointing between the same
    two characters.
    """
    buffer: Buffer
    row: int
    col: int


@dataclass
class Window:
    buffer_name: str
    scroll_top: int = 0


@dataclass(frozen=True)
class Layout:
    """Snapshot of the window arrangement, compared by value."""
    windows: Tuple[Tuple[str, int], ...]
    selected: int


class Workspace:
    """
    Buffers plus a vertical stack of windows, one of them selected.

    Implements every `capture_pad.host.Host` operation. The yes/no question
    is delegated to ``confirm``; without one every question is declined.
    """

    def __init__(self, confirm: Optional[Callable[[str], bool]] = None) -> None:
        self.buffers: Dict[str, Buffer] = {SCRATCH_BUFFER: Buffer(SCRATCH_BUFFER)}
        self.windows: List[Window] = [Window(SCRATCH_BUFFER)]
        self.selected = 0
        self.keymaps: Dict[str, Dict[KeySequence, Action]] = {}
        self.headers: Dict[str, str] = {}
        self.confirm_handler = confirm

    # --- Queries ---------------------------------------------------------
    @property
    def selected_window(self) -> Window:
        return self.windows[self.selected]

    @property
    def current_buffer(self) -> Buffer:
        return self.buffers[self.selected_window.buffer_name]

    def get_buffer(self, name: str) -> Buffer:
        try:
            return self.buffers[name]
        except KeyError as exc:
            raise HostError(f"No buffer named {name!r}") from exc

    def keymap_for_current(self) -> Dict[KeySequence, Action]:
        return self.keymaps.get(self.selected_window.buffer_name, {})

    def header_for(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    # --- Buffers ---------------------------------------------------------
    def _unique_name(self, base: str) -> str:
        name, counter = base, 2
        while name in self.buffers:
            name = f"{base}<{counter}>"
            counter += 1
        return name

    def switch_to_buffer(self, name: str) -> None:
        self.get_buffer(name)
        self.selected_window.buffer_name = name
        self.selected_window.scroll_top = 0

    def kill_buffer(self, name: str) -> None:
        """
        Removes a buffer. Windows showing it are deleted; if that would leave
        no window, the last one shows another buffer instead. Killing
        *scratch* leaves a fresh empty *scratch* behind.
        """
        buffer = self.get_buffer(name)
        buffer.alive = False
        del self.buffers[name]
        self.keymaps.pop(name, None)
        self.headers.pop(name, None)
        if name == SCRATCH_BUFFER or not self.buffers:
            self.buffers[SCRATCH_BUFFER] = Buffer(SCRATCH_BUFFER)

        selected_window = self.selected_window
        remaining = [w for w in self.windows if w.buffer_name != name]
        if not remaining:
            fallback = next(iter(self.buffers))
            selected_window.buffer_name = fallback
            selected_window.scroll_top = 0
            remaining = [selected_window]
        self.windows = remaining
        if selected_window in remaining:
            self.selected = remaining.index(selected_window)
        else:
            self.selected = min(self.selected, len(remaining) - 1)
        logger.debug("Killed buffer %r; %d window(s) left.", name, len(self.windows))

    def open_file(self, path: str) -> Buffer:
        """
        Visits ``path`` in a new buffer shown in the selected window.

        The encoding is guessed with chardet; a missing file gives an empty
        buffer that will be created on save.

        Raises:
            HostError: If the path is a directory or cannot be decoded.
        """
        if os.path.isdir(path):
            raise HostError(f"'{os.path.basename(path)}' is a directory")

        text, encoding = "", "utf-8"
        if os.path.exists(path):
            text, encoding = self._read_with_detected_encoding(path)
        else:
            logger.info("open_file: '%s' does not exist yet, starting an empty buffer.", path)

        if text.endswith("\n"):
            text = text[:-1]
        buffer = Buffer(self._unique_name(os.path.basename(path) or path), text, filename=path,
                        encoding=encoding)
        self.buffers[buffer.name] = buffer
        self.switch_to_buffer(buffer.name)
        logger.info("Opened '%s' (enc: %s, %d lines).", path, encoding, len(buffer.lines))
        return buffer

    @staticmethod
    def _read_with_detected_encoding(path: str) -> Tuple[str, str]:
        try:
            with open(path, "rb") as f_binary:
                raw = f_binary.read()
        except OSError as exc:
            raise HostError(f"Cannot read '{path}': {exc}") from exc
        if not raw:
            return "", "utf-8"

        guess = chardet.detect(raw[:20 * 1024])
        encoding_guess = guess.get("encoding")
        confidence = guess.get("confidence") or 0.0
        logger.debug("Chardet detected encoding '%s' with confidence %.2f for '%s'.",
                     encoding_guess, confidence, path)

        candidates: List[str] = []
        if encoding_guess and confidence >= 0.75:
            candidates.append(encoding_guess)
        candidates.extend(enc for enc in ("utf-8", "latin-1") if enc not in candidates)

        for encoding in candidates:
            try:
                return raw.decode(encoding).replace("\r\n", "\n"), encoding
            except (UnicodeDecodeError, LookupError) as exc:
                logger.warning("Failed to decode '%s' as %s: %s", path, encoding, exc)
        raise HostError(f"Could not decode '{path}'")

    def save_file(self, buffer: Optional[Buffer] = None) -> str:
        """
        Writes a file-visiting buffer back to disk and returns the path.

        Raises:
            HostError: If the buffer visits no file or the write fails.
        """
        buffer = buffer or self.current_buffer
        if not buffer.filename:
            raise HostError(f"Buffer {buffer.name!r} is not visiting a file")
        try:
            with open(buffer.filename, "w", encoding=buffer.encoding, errors="replace") as fh:
                fh.write(buffer.text + "\n")
        except OSError as exc:
            raise HostError(f"Cannot write '{buffer.filename}': {exc}") from exc
        buffer.modified = False
        logger.info("Saved '%s' (%d lines).", buffer.filename, len(buffer.lines))
        return buffer.filename

    # --- Windows ---------------------------------------------------------
    def other_window(self) -> None:
        self.selected = (self.selected + 1) % len(self.windows)

    # --- Host protocol ---------------------------------------------------
    def surface_exists(self, name: str) -> bool:
        return name in self.buffers

    def create_surface(self, name: str) -> None:
        if name not in self.buffers:
            self.buffers[name] = Buffer(name)

    def destroy_surface(self, name: str) -> None:
        self.kill_buffer(name)

    def erase_surface(self, name: str) -> None:
        self.get_buffer(name).erase()

    def read_surface(self, name: str) -> str:
        return self.get_buffer(name).text

    def write_surface(self, name: str, text: str) -> None:
        self.get_buffer(name).insert(text)

    def save_layout(self) -> Layout:
        return Layout(tuple((w.buffer_name, w.scroll_top) for w in self.windows), self.selected)

    def restore_layout(self, layout: Layout) -> None:
        windows = []
        for buffer_name, scroll_top in layout.windows:
            if buffer_name not in self.buffers:
                logger.warning("restore_layout: buffer %r is gone, showing %s instead.",
                               buffer_name, SCRATCH_BUFFER)
                buffer_name, scroll_top = SCRATCH_BUFFER, 0
            windows.append(Window(buffer_name, scroll_top))
        if not windows:
            raise HostError("Cannot restore an empty layout")
        self.windows = windows
        self.selected = min(layout.selected, len(windows) - 1)

    def collapse_layout(self) -> None:
        self.windows = [self.selected_window]
        self.selected = 0

    def show_surface(self, name: str) -> None:
        self.get_buffer(name)
        for index, window in enumerate(self.windows):
            if window.buffer_name == name:
                self.selected = index
                return
        self.windows.append(Window(name))
        self.selected = len(self.windows) - 1

    def current_location(self) -> Location:
        buffer = self.current_buffer
        location = Location(buffer, buffer.row, buffer.col)
        buffer.markers.add(location)
        return location

    def goto_location(self, location: Location) -> None:
        buffer = location.buffer
        if not buffer.alive or self.buffers.get(buffer.name) is not buffer:
            raise HostError(f"Location refers to killed buffer {buffer.name!r}")
        for index, window in enumerate(self.windows):
            if window.buffer_name == buffer.name:
                self.selected = index
                break
        else:
            self.selected_window.buffer_name = buffer.name
        buffer.set_point(location.row, location.col)

    def insert_at_point(self, text: str) -> None:
        self.current_buffer.insert(text)

    def confirm(self, question: str) -> bool:
        if self.confirm_handler is None:
            logger.warning("No confirmation handler; declining %r.", question)
            return False
        return bool(self.confirm_handler(question))

    def bind_keys(self, name: str, bindings: Dict[KeySequence, Action]) -> None:
        self.get_buffer(name)
        self.keymaps[name] = dict(bindings)

    def set_header(self, name: str, text: str) -> None:
        self.get_buffer(name)
        self.headers[name] = text
