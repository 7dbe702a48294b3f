# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import curses
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from capture_pad.config import DEFAULT_CONFIG
from capture_pad.host import KeySequence

KEY_LOGGER = logging.getLogger("capture_pad.keyevents")

DEFAULT_KEYBINDINGS: Dict[str, str] = dict(DEFAULT_CONFIG["keybindings"])
CAPTURE_ACTIONS = ("capture_save", "capture_cancel")

_NAMED_KEYS: Dict[str, int] = {
    'left': curses.KEY_LEFT, 'right': curses.KEY_RIGHT,
    'up': curses.KEY_UP, 'down': curses.KEY_DOWN,
    'home': curses.KEY_HOME, 'end': getattr(curses, 'KEY_END', curses.KEY_LL),
    'pageup': curses.KEY_PPAGE, 'pgup': curses.KEY_PPAGE,
    'pagedown': curses.KEY_NPAGE, 'pgdn': curses.KEY_NPAGE,
    'delete': curses.KEY_DC, 'del': curses.KEY_DC,
    'backspace': curses.KEY_BACKSPACE,
    'insert': curses.KEY_IC,
    'tab': 9,
    'enter': curses.KEY_ENTER, 'return': curses.KEY_ENTER,
    'space': ord(' '),
    'esc': 27, 'escape': 27,
    'shift+tab': getattr(curses, 'KEY_BTAB', 353),
}
_NAMED_KEYS.update({f"f{i}": getattr(curses, f"KEY_F{i}", 264 + i) for i in range(1, 13)})

# Control codes for punctuation that has one.
_CTRL_PUNCTUATION = {'/': 31, '\\': 28, '[': 27, ']': 29, '^': 30, '_': 31, ' ': 0}

_KEY_LABELS: Dict[int, str] = {
    curses.KEY_LEFT: "Left", curses.KEY_RIGHT: "Right",
    curses.KEY_UP: "Up", curses.KEY_DOWN: "Down",
    curses.KEY_HOME: "Home", _NAMED_KEYS['end']: "End",
    curses.KEY_PPAGE: "PageUp", curses.KEY_NPAGE: "PageDown",
    curses.KEY_DC: "Del", curses.KEY_BACKSPACE: "Backspace",
    curses.KEY_IC: "Insert", curses.KEY_ENTER: "Enter",
    _NAMED_KEYS['shift+tab']: "Shift+Tab",
    9: "Tab", 27: "Esc", ord(' '): "Space",
}
_KEY_LABELS.update({_NAMED_KEYS[f"f{i}"]: f"F{i}" for i in range(1, 13)})


def _decode_key(token: str) -> Union[int, str]:
    """
    Decodes a single key token such as ``"ctrl+c"``, ``"f2"`` or ``"alt+x"``.

    Returns an integer key code, or a logical ``"alt-..."`` string for Alt
    bindings (terminals deliver those as an ESC prefix, resolved by the reader).

    Raises:
        ValueError: If the token is empty or uses an unknown key or modifier.
    """
    original_key_string = token
    s = token.strip().lower()
    if not s:
        raise ValueError("Key string cannot be empty.")

    if s.startswith("alt-"):
        return s

    # A literal '+' as the base key ("ctrl++") must survive the split.
    if s.endswith("++"):
        parts = s[:-2].split('+') + ['+']
    else:
        parts = s.split('+')

    if "alt" in parts[:-1]:
        other_mods = sorted(m for m in parts[:-1] if m != "alt")
        prefix = "+".join(other_mods) + "+" if other_mods else ""
        return f"alt-{prefix}{parts[-1]}"

    if s in _NAMED_KEYS:
        return _NAMED_KEYS[s]

    base_key_str = parts[-1]
    modifiers = set(parts[:-1])

    if base_key_str in _NAMED_KEYS:
        base_code = _NAMED_KEYS[base_key_str]
    elif len(base_key_str) == 1:
        base_code = ord(base_key_str)
    else:
        raise ValueError(f"Unknown base key '{base_key_str}' in '{original_key_string}'")

    if "ctrl" in modifiers:
        modifiers.remove("ctrl")
        if len(base_key_str) == 1 and 'a' <= base_key_str <= 'z':
            base_code = ord(base_key_str) - ord('a') + 1
        elif base_key_str in _CTRL_PUNCTUATION:
            base_code = _CTRL_PUNCTUATION[base_key_str]
        elif base_key_str == "space":
            base_code = 0
        else:
            raise ValueError(f"Ctrl has no terminal code for '{base_key_str}' in '{original_key_string}'")

    if "shift" in modifiers:
        modifiers.remove("shift")
        if len(base_key_str) == 1 and 'a' <= base_key_str <= 'z' and base_code == ord(base_key_str):
            base_code = ord(base_key_str.upper())

    if modifiers:
        raise ValueError(f"Unknown or unhandled modifiers {sorted(modifiers)} in '{original_key_string}'")

    return base_code


def decode_keystring(key_input: Union[str, int]) -> KeySequence:
    """
    Decodes a chord specification into a key-code sequence.

    Keys of a chord are separated by whitespace, so ``"ctrl+c ctrl+k"`` is the
    two-key sequence ``(3, 11)``. A bare integer is taken as a single raw code.

    Example:
        >>> decode_keystring("ctrl+c ctrl+c")
        (3, 3)
        >>> decode_keystring("f2") == (curses.KEY_F2,)
        True
    """
    if isinstance(key_input, bool) or not isinstance(key_input, (str, int)):
        raise ValueError(f"Invalid key_input type: {type(key_input)}. Expected str or int.")
    if isinstance(key_input, int):
        return (key_input,)
    tokens = key_input.split()
    if not tokens:
        raise ValueError("Key string cannot be empty.")
    return tuple(_decode_key(token) for token in tokens)


def normalize_key(key: Union[str, int]) -> Union[str, int]:
    """Maps a single-character string from ``get_wch()`` to its ordinal."""
    if isinstance(key, str) and len(key) == 1:
        return ord(key)
    return key


def describe_keys(sequence: KeySequence) -> str:
    """Renders a key sequence for humans, e.g. ``(3, 11)`` -> ``"Ctrl+C Ctrl+K"``."""
    labels: List[str] = []
    for code in sequence:
        if isinstance(code, str):
            labels.append("+".join(p.capitalize() if len(p) > 1 else p.upper()
                                   for p in code.replace("alt-", "alt+", 1).split("+")))
        elif code in _KEY_LABELS:
            labels.append(_KEY_LABELS[code])
        elif 1 <= code <= 26:
            labels.append("Ctrl+" + chr(code + ord('A') - 1))
        elif code in _CTRL_PUNCTUATION.values():
            punct = next(k for k, v in _CTRL_PUNCTUATION.items() if v == code)
            labels.append("Ctrl+" + punct)
        elif 32 < code < 0x110000:
            labels.append(chr(code))
        else:
            labels.append(f"<{code}>")
    return " ".join(labels)


class KeyResult(NamedTuple):
    """Outcome of feeding one key into `KeyBinder.feed`."""
    status: str  # "matched", "pending" or "unbound"
    action: Optional[Callable[[], Any]]
    keys: KeySequence


## ==================== KeyBinder Class ====================
class KeyBinder:
    """
    Owns the rebindable action-to-chord table and resolves multi-key chords.

    The table starts from `DEFAULT_KEYBINDINGS` and is overridden by the
    ``[keybindings]`` section of the configuration. Callers build a
    chord-to-callable table for the actions they serve with `bindings_for`
    and push keys through `feed`, which keeps the pending chord prefix.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.keybindings: Dict[str, List[KeySequence]] = self._load_keybindings()
        self._pending: KeySequence = ()

    def _load_keybindings(self) -> Dict[str, List[KeySequence]]:
        user_keybindings_config = self.config.get("keybindings", {})
        parsed_keybindings: Dict[str, List[KeySequence]] = {}

        actions = list(DEFAULT_KEYBINDINGS) + [a for a in user_keybindings_config if a not in DEFAULT_KEYBINDINGS]
        for action in actions:
            spec = user_keybindings_config.get(action, DEFAULT_KEYBINDINGS.get(action))
            if not spec:
                logging.debug(f"Keybinding for action '{action}' is disabled or empty.")
                continue
            sequences = []
            for item in self._split_spec(spec):
                try:
                    sequence = decode_keystring(item)
                except ValueError as e:
                    logging.error(
                        f"Error parsing keybinding item '{item!r}' for action '{action}': {e}. "
                        f"This specific binding for the action will be ignored."
                    )
                    continue
                if sequence not in sequences:
                    sequences.append(sequence)
            if sequences:
                parsed_keybindings[action] = sequences
            else:
                logging.warning(f"No valid key codes found for action '{action}' after parsing. It will not be bound.")

        logging.debug(f"Loaded keybindings (action -> sequences): {parsed_keybindings}")
        return parsed_keybindings

    @staticmethod
    def _split_spec(spec: Union[str, int, List[Union[str, int]]]) -> List[Union[str, int]]:
        if isinstance(spec, list):
            return [item for item in spec if item or item == 0]
        if isinstance(spec, str) and "|" in spec:
            return [s.strip() for s in spec.split("|") if s.strip()]
        return [spec]

    def rebind(self, action: str, spec: Union[str, int, List[Union[str, int]], None]) -> None:
        """
        Replaces the chords bound to ``action``. An empty spec unbinds it.

        Raises:
            ValueError: If any chord in ``spec`` cannot be decoded.
        """
        if not spec:
            self.keybindings.pop(action, None)
            logging.info(f"Action '{action}' unbound.")
            return
        sequences = [decode_keystring(item) for item in self._split_spec(spec)]
        self.keybindings[action] = sequences
        logging.info(f"Action '{action}' rebound to {[describe_keys(s) for s in sequences]}.")

    def sequences(self, action: str) -> List[KeySequence]:
        return list(self.keybindings.get(action, []))

    def describe(self, action: str) -> str:
        """Label of the first chord bound to ``action``, or ``"unbound"``."""
        sequences = self.keybindings.get(action)
        if not sequences:
            return "unbound"
        return describe_keys(sequences[0])

    def bindings_for(self, actions: Dict[str, Callable[[], Any]]) -> Dict[KeySequence, Callable[[], Any]]:
        """Builds a chord-to-callable table for the given action handlers."""
        table: Dict[KeySequence, Callable[[], Any]] = {}
        for action, handler in actions.items():
            for sequence in self.keybindings.get(action, []):
                if sequence in table:
                    logging.warning(
                        f"Key sequence {describe_keys(sequence)} bound to several actions; "
                        f"'{action}' overrides the earlier one."
                    )
                table[sequence] = handler
        return table

    @property
    def pending(self) -> KeySequence:
        return self._pending

    def reset(self) -> None:
        self._pending = ()

    def feed(self, key: Union[str, int], table: Dict[KeySequence, Callable[[], Any]]) -> KeyResult:
        """
        Advances the chord state machine by one key.

        Returns ``matched`` with the handler when a full sequence is typed,
        ``pending`` while the keys so far are a strict prefix of some sequence,
        and ``unbound`` otherwise. A broken chord (a prefix followed by a key
        that completes nothing) is reported as ``unbound`` with the whole
        sequence, so the caller can swallow it instead of inserting text.
        """
        key = normalize_key(key)
        sequence = self._pending + (key,)
        KEY_LOGGER.debug("feed: key=%r sequence=%r", key, sequence)

        handler = table.get(sequence)
        if handler is not None:
            self._pending = ()
            return KeyResult("matched", handler, sequence)

        if any(len(s) > len(sequence) and s[:len(sequence)] == sequence for s in table):
            self._pending = sequence
            return KeyResult("pending", None, sequence)

        self._pending = ()
        return KeyResult("unbound", None, sequence)
