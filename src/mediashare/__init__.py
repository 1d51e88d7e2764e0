"""mediashare: a sandboxed, shareable media library over HTTP."""

__version__ = "0.1.0"

from mediashare.config import AppConfig, AuthConfig, load_config
from mediashare.events import ChangeEvent, ChangeNotifier, EventType
from mediashare.store import JsonStore
from mediashare.streaming import ByteRange, RangeStreamer, parse_range

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ByteRange",
    "ChangeEvent",
    "ChangeNotifier",
    "EventType",
    "JsonStore",
    "RangeStreamer",
    "__version__",
    "load_config",
    "parse_range",
]
