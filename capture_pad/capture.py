# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
"""Capture session controller.

Opens a temporary editing surface, then hands the composed text back to the
caller on save (insertion at the original cursor, or a callback) or throws it
away on cancel.

    controller = CaptureController(host, KeyBinder(config), config)
    controller.open("seed text", on_save=send_somewhere)
    # user edits, then presses Ctrl+C Ctrl+C -> controller.save()
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from capture_pad.config import DEFAULT_CONFIG
from capture_pad.host import Host
from capture_pad.keybinder import KeyBinder

logger = logging.getLogger(__name__)

SaveCallback = Callable[[str], None]


class CaptureError(Exception):
    """Raised when save or cancel is requested with no session open."""


@dataclass
class Session:
    """State of one open -> (save | cancel) cycle."""
    origin: Any
    layout: Any
    on_save: Optional[SaveCallback] = None


class CaptureController:
    """
    Owns the single capture session slot and the three operations on it.

    Args:
        host: The editor collaborator (see `capture_pad.host.Host`).
        keybinder: Source of the save/cancel chords and their labels.
        config: Application configuration; only ``[capture]`` is read.
    """

    def __init__(self, host: Host, keybinder: Optional[KeyBinder] = None,
                 config: Optional[Dict[str, Any]] = None) -> None:
        capture_config = dict(DEFAULT_CONFIG["capture"])
        capture_config.update((config or {}).get("capture", {}))

        self.host = host
        self.keybinder = keybinder or KeyBinder(config)
        self.surface_name: str = capture_config["surface_name"]
        self.header_template: str = capture_config["header"]
        self.confirm_question: str = capture_config["confirm_question"]
        self._session: Optional[Session] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None and self.host.surface_exists(self.surface_name)

    def banner(self) -> str:
        """Header text naming both actions with their current chords."""
        return self.header_template.format(
            capture_save=self.keybinder.describe("capture_save"),
            capture_cancel=self.keybinder.describe("capture_cancel"),
        )

    def open(self, text: Optional[str] = None, on_save: Optional[SaveCallback] = None) -> bool:
        """
        Opens the capture surface, optionally seeded with ``text``.

        If the surface already exists the user is asked whether to throw it
        away; declining leaves everything as it was and returns False.
        Without ``on_save`` the text is inserted at the current cursor on save.
        """
        host = self.host
        name = self.surface_name

        if host.surface_exists(name):
            if not host.confirm(self.confirm_question):
                logger.info("Capture relaunch declined; keeping existing surface %r.", name)
                return False
            logger.info("Replacing existing capture surface %r.", name)
            host.destroy_surface(name)
            self._session = None

        origin = host.current_location()
        layout = host.save_layout()

        host.collapse_layout()
        host.create_surface(name)
        host.show_surface(name)

        host.erase_surface(name)
        if text:
            host.write_surface(name, text)

        self._session = Session(origin=origin, layout=layout, on_save=on_save)

        host.set_header(name, self.banner())
        host.bind_keys(name, self.keybinder.bindings_for({
            "capture_save": self.save,
            "capture_cancel": self.cancel,
        }))
        logger.info("Capture session opened (%d chars seeded, callback=%s).",
                    len(text or ""), on_save is not None)
        return True

    def _require_session(self) -> Session:
        if self._session is None:
            raise CaptureError("No capture session is open")
        return self._session

    def save(self) -> None:
        """
        Delivers the surface text, then closes the surface and restores the layout.

        The session is released only once teardown has finished, so a host
        failure part-way through leaves it in place for `cancel`.
        """
        session = self._require_session()
        host = self.host

        text = host.read_surface(self.surface_name)
        host.goto_location(session.origin)
        if session.on_save is not None:
            session.on_save(text)
        else:
            host.insert_at_point(text)

        host.destroy_surface(self.surface_name)
        host.restore_layout(session.layout)
        self._session = None
        logger.info("Capture session saved (%d chars).", len(text))

    def cancel(self) -> None:
        """Discards the surface text, closes the surface and restores the layout."""
        session = self._require_session()
        host = self.host

        host.goto_location(session.origin)
        host.destroy_surface(self.surface_name)
        host.restore_layout(session.layout)
        self._session = None
        logger.info("Capture session cancelled.")
