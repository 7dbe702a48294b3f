# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
"""Host collaborator interface consumed by the capture controller.

The controller never touches buffers, windows or keymaps directly. Anything
that implements `Host` can carry a capture session: the in-memory
`capture_pad.workspace.Workspace`, a test double, or another editor.
"""

from typing import Any, Callable, Dict, Protocol, Tuple, Union, runtime_checkable

KeySequence = Tuple[Union[int, str], ...]
Action = Callable[[], Any]


class HostError(Exception):
    """Base exception for host-level failures.

    Raised for unknown surfaces, stale locations and layouts that no longer
    fit the host. The controller does not catch these.
    """


@runtime_checkable
class Host(Protocol):
    """Protocol for the editor operations a capture session needs.

    Locations and layouts are opaque to the caller: whatever
    `current_location` or `save_layout` return is handed back unchanged.
    """

    def surface_exists(self, name: str) -> bool:
        """Return True if a surface with this name is live."""
        ...

    def create_surface(self, name: str) -> None:
        """Create the named surface, or reuse it if it already exists."""
        ...

    def destroy_surface(self, name: str) -> None:
        """Destroy the named surface together with its text."""
        ...

    def erase_surface(self, name: str) -> None:
        ...

    def read_surface(self, name: str) -> str:
        ...

    def write_surface(self, name: str, text: str) -> None:
        """Insert ``text`` at the surface's insertion point."""
        ...

    def save_layout(self) -> Any:
        ...

    def restore_layout(self, layout: Any) -> None:
        ...

    def collapse_layout(self) -> None:
        """Reduce the view to the currently selected window."""
        ...

    def show_surface(self, name: str) -> None:
        """Present the surface in a separate window and give it focus."""
        ...

    def current_location(self) -> Any:
        ...

    def goto_location(self, location: Any) -> None:
        """Focus the window owning ``location`` and move point there.

        Raises:
            HostError: If the location can no longer be resolved.
        """
        ...

    def insert_at_point(self, text: str) -> None:
        ...

    def confirm(self, question: str) -> bool:
        ...

    def bind_keys(self, name: str, bindings: Dict[KeySequence, Action]) -> None:
        """Install a keymap that is active only while the surface has focus."""
        ...

    def set_header(self, name: str, text: str) -> None:
        ...
