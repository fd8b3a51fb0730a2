"""Core utilities for the study companion."""

from aceai.app.core.config import settings
from aceai.app.core.logging import get_logger, setup_logging
from aceai.app.core.storage import (
    BroadcastHub,
    ChangeChannel,
    FileStorage,
    InMemoryStorage,
    StorageBackend,
    get_storage,
    reset_storage,
)

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "BroadcastHub",
    "ChangeChannel",
    "FileStorage",
    "InMemoryStorage",
    "StorageBackend",
    "get_storage",
    "reset_storage",
]
