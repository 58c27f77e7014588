"""Anonymous usage telemetry."""

from .events import EventLogger, load_or_create_uid

__all__ = ["EventLogger", "load_or_create_uid"]
