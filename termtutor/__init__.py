from importlib import metadata

try:
    __version__ = metadata.version("termtutor")
except metadata.PackageNotFoundError:
    __version__ = "0.1.0"

from .cli import main
from .danger import DangerVerdict, classify_command
from .gemini_client import GeminiClient
from .session import Session, SessionStore, Turn

__all__ = [
    "__version__",
    "main",
    "DangerVerdict",
    "classify_command",
    "GeminiClient",
    "Session",
    "SessionStore",
    "Turn",
]
