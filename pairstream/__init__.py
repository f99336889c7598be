"""pairstream: conversation streaming and context optimization for AI pair programming."""

from .config import load_config
from .pipeline import ChatPipeline
from .types import (
    ChatRequest,
    FileEntry,
    Message,
    PairstreamConfig,
    Usage,
)

__version__ = "0.1.0"

__all__ = [
    "ChatPipeline",
    "load_config",
    "ChatRequest",
    "FileEntry",
    "Message",
    "PairstreamConfig",
    "Usage",
]
