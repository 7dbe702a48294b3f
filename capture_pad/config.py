#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# capture-pad is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import copy
import logging
import logging.handlers
import os
import sys
import tempfile
from typing import Any, Dict, Optional

import toml


DEFAULT_CONFIG_FILENAME = "config.toml"

# Minimal hard-coded defaults. Every section here is guaranteed to exist in
# the dictionary returned by load_config().
DEFAULT_CONFIG: Dict[str, Any] = {
    "capture": {
        "surface_name": "*capture*",
        "header": "Capture buffer.  Finish '{capture_save}', abort '{capture_cancel}'.",
        "confirm_question": "Capture buffer already exists. Destroy it and start over? (y/n): ",
    },
    "keybindings": {
        "capture_save": "ctrl+c ctrl+c",
        "capture_cancel": "ctrl+c ctrl+k",
        "open_capture": "f2",
        "save_file": "ctrl+s",
        "quit": "ctrl+q",
        "other_window": "ctrl+o",
        "cancel_operation": "esc",
    },
    "editor": {
        "tab_size": 4,
        "use_system_clipboard": True,
        "target_fps": 30,
    },
    "colors": {
        "keyword": "#FF7B72",
        "string": "#A5D6FF",
        "comment": "#8B949E",
        "number": "#79C0FF",
        "function": "#D2A8FF",
        "status": "#C9D1D9",
        "header": "#F2CC60",
        "default": "#C9D1D9",
    },
    "logging": {
        "file_level": "DEBUG",
        "console_level": "WARNING",
        "log_to_console": False,
        "separate_error_log": False,
        "log_file": "capture_pad.log",
    },
}


# --- Dictionary Deep Merge Utility ---
def deep_merge(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """
    Recursively merges the `override` dictionary into the `base` dictionary.

    If a key exists in both dictionaries and both values are dictionaries,
    the merge is performed recursively. Otherwise, the value from `override`
    replaces the value from `base`. The original `base` dictionary is not modified;
    a new merged dictionary is returned.

    Example:
        >>> base = {'a': 1, 'b': {'x': 10, 'y': 20}}
        >>> override = {'b': {'y': 99, 'z': 100}, 'c': 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 99, 'z': 100}, 'c': 3}
    """
    result = dict(base)
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = override_value
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads and merges the application configuration from a TOML file, applying safe defaults.

    Three tiers:
    1. Hard-coded defaults (`DEFAULT_CONFIG`) so the application starts anywhere.
    2. The user's TOML file (``config_path`` or *config.toml* in the working
       directory), overriding only the keys it names.
    3. A post-merge pass that back-fills any section key the user file dropped.

    Missing files, TOML syntax errors and I/O errors are logged and resolved by
    falling back to the defaults, so the function never raises.

    Args:
        config_path (Optional[str]): Explicit path to a TOML file.

    Returns:
        dict: The fully merged configuration dictionary.
    """
    minimal_default = copy.deepcopy(DEFAULT_CONFIG)
    path = config_path or DEFAULT_CONFIG_FILENAME
    user_config: Dict[str, Any] = {}

    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as fh:
                user_config = toml.loads(fh.read())
            logging.debug("Loaded user config from %s", path)
        except FileNotFoundError:
            logging.warning("Config file %s vanished - using defaults.", path)
        except toml.TomlDecodeError as exc:
            logging.error("TOML parse error in %s: %s - using defaults.", path, exc)
        except OSError as exc:
            logging.error("Could not read %s: %s - using defaults.", path, exc)
    elif config_path:
        logging.warning("Config file %s not found - using defaults.", path)
    else:
        logging.debug("No %s in working directory - using defaults.", path)

    final_config: Dict[str, Any] = deep_merge(minimal_default, user_config)

    for section, default_val in minimal_default.items():
        if not isinstance(final_config.get(section), dict):
            if section in user_config:
                logging.warning("Config section [%s] is not a table - using defaults.", section)
            final_config[section] = default_val
            continue
        for sub_key, sub_val in default_val.items():
            final_config[section].setdefault(sub_key, sub_val)

    logging.debug("Final configuration loaded successfully.")
    return final_config


# --- Logging Setup ---
def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configures application-wide logging handlers and log levels.

    Up to four independent handlers are installed:

    1. **File handler** - rotating *capture_pad.log* capturing everything from
       the configured ``file_level`` (default **DEBUG**) upward.
    2. **Console handler** - optional ``stderr`` output at ``console_level``.
       Off by default because curses owns the terminal.
    3. **Error-file handler** - optional rotating *error.log* with only
       **ERROR** and **CRITICAL** events.
    4. **Key-event handler** - rotating *keytrace.log* attached to the
       ``capture_pad.keyevents`` logger, enabled when ``CAPTURE_PAD_KEYTRACE``
       is ``1/true/yes``.

    Existing handlers on the root logger are replaced, so calling this more
    than once (e.g. in unit tests) does not duplicate records. I/O errors are
    reported to stderr and never raised.
    """
    if config is None:
        config = {}
    logging_config = config.get("logging", {})
    log_filename = logging_config.get("log_file", "capture_pad.log")
    log_file_level_str = str(logging_config.get("file_level", "DEBUG")).upper()
    log_file_level = getattr(logging, log_file_level_str, logging.DEBUG)

    log_dir = os.path.dirname(log_filename)
    if log_dir and not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir)
        except OSError as e_mkdir:
            print(f"Error creating log directory '{log_dir}': {e_mkdir}", file=sys.stderr)
            log_filename = os.path.join(tempfile.gettempdir(), "capture_pad.log")
            print(f"Logging to temporary file: '{log_filename}'", file=sys.stderr)

    file_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)-22s - %(message)s (%(filename)s:%(lineno)d)"
    )
    file_handler = None
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_filename, maxBytes=2 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_file_level)
    except OSError as e_fh:
        print(f"Error setting up file logger for '{log_filename}': {e_fh}. File logging disabled.",
              file=sys.stderr)

    console_handler = None
    if logging_config.get("log_to_console", False):
        console_level_str = str(logging_config.get("console_level", "WARNING")).upper()
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("%(levelname)-8s - %(name)-12s - %(message)s"))
        console_handler.setLevel(getattr(logging, console_level_str, logging.WARNING))

    error_file_handler = None
    if logging_config.get("separate_error_log", False):
        try:
            error_file_handler = logging.handlers.RotatingFileHandler(
                "error.log", maxBytes=1 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            error_file_handler.setFormatter(file_formatter)
            error_file_handler.setLevel(logging.ERROR)
        except OSError as e_efh:
            print(f"Error setting up separate error log 'error.log': {e_efh}.", file=sys.stderr)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    for handler in (file_handler, console_handler, error_file_handler):
        if handler:
            root_logger.addHandler(handler)
    root_logger.setLevel(log_file_level)

    # --- Key Event Logger ---
    key_event_logger = logging.getLogger("capture_pad.keyevents")
    key_event_logger.propagate = False
    key_event_logger.setLevel(logging.DEBUG)
    key_event_logger.handlers = []

    if os.environ.get("CAPTURE_PAD_KEYTRACE", "").lower() in {"1", "true", "yes"}:
        try:
            key_trace_handler = logging.handlers.RotatingFileHandler(
                "keytrace.log", maxBytes=1 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            key_trace_handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))
            key_event_logger.addHandler(key_trace_handler)
            key_event_logger.disabled = False
            logging.info("Key event tracing enabled, logging to 'keytrace.log'.")
        except OSError as e_keytrace:
            logging.error(f"Failed to set up key trace logging: {e_keytrace}", exc_info=True)
            key_event_logger.disabled = True
    else:
        key_event_logger.addHandler(logging.NullHandler())
        key_event_logger.disabled = True
        logging.debug("Key event tracing is disabled.")

    logging.info("Logging setup complete. Root logger level: %s.", logging.getLevelName(root_logger.level))
    if file_handler:
        logging.info(f"File logging to '{log_filename}' at level: {logging.getLevelName(file_handler.level)}.")
