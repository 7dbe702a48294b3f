# capture_pad/__init__.py

__version__ = "0.1.0"

from .capture import CaptureController, CaptureError, Session
from .config import deep_merge, load_config, setup_logging
from .host import Host, HostError
from .keybinder import KeyBinder, decode_keystring, describe_keys
from .workspace import Buffer, Layout, Location, Workspace

__all__ = [
    'CaptureController',
    'CaptureError',
    'Session',
    'Host',
    'HostError',
    'KeyBinder',
    'decode_keystring',
    'describe_keys',
    'Workspace',
    'Buffer',
    'Layout',
    'Location',
    'deep_merge',
    'load_config',
    'setup_logging',
]
