"""
TermTutor - Configuration & Credentials

Settings (model, response language) are stored as YAML under
``~/.config/termtutor/config.yaml``. The API key is looked up in the
``GEMINI_API_KEY`` environment variable first, then in an owner-only file
next to the settings.

Everything is resolved once at startup into a ``TutorConfig`` that is passed
explicitly to the Gemini client.
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from termtutor.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_LANGUAGE = "en-us"
API_KEY_ENV = "GEMINI_API_KEY"
CONFIG_DIR_ENV = "TERMTUTOR_CONFIG_DIR"

# Known locale tags and the directive sent to the model for each
LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "en": "Respond in English.",
    "en-us": "Respond in English.",
    "pt": "Respond in Portuguese (Brazilian).",
    "pt-br": "Respond in Portuguese (Brazilian).",
    "es": "Respond in Spanish.",
    "es-es": "Respond in Spanish.",
}


def language_instruction(language: str) -> str:
    """Return the plain "respond in X" directive for a locale tag."""
    return LANGUAGE_INSTRUCTIONS.get(language.lower(), f"Respond in {language}.")


def default_config_dir() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / "termtutor"


@dataclass
class Settings:
    """User-editable settings persisted in config.yaml"""

    model: str = DEFAULT_MODEL
    language: str = DEFAULT_LANGUAGE

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        return cls(
            model=data.get("model") or DEFAULT_MODEL,
            language=data.get("language") or DEFAULT_LANGUAGE,
        )


@dataclass(frozen=True)
class TutorConfig:
    """Everything the Gemini client needs, resolved once at startup."""

    api_key: str
    model: str = DEFAULT_MODEL
    language: str = DEFAULT_LANGUAGE
    session_name: str = ""

    @property
    def language_instruction(self) -> str:
        return language_instruction(self.language)


class ConfigManager:
    """
    Settings and credential manager

    Features:
    - YAML-based settings storage
    - Owner-only API key file
    - Reset to defaults
    """

    CONFIG_FILE = "config.yaml"
    API_KEY_FILE = "api_key"
    SETTABLE_KEYS = ("model", "language")

    def __init__(self, config_dir: Path | None = None):
        """
        Args:
            config_dir: Directory holding config.yaml and api_key
                (defaults to ~/.config/termtutor)
        """
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_path = self.config_dir / self.CONFIG_FILE
        self.api_key_path = self.config_dir / self.API_KEY_FILE

    def _ensure_config_directory(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        try:
            self.config_dir.chmod(0o700)
        except OSError as e:
            logger.warning(f"Could not set directory permissions: {e}")

    # ------------------------------------------------------------- Settings
    def load(self) -> Settings:
        """Load settings, falling back to defaults for a missing or bad file."""
        if not self.config_path.exists():
            return Settings()
        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable config {self.config_path}: {e}")
            return Settings()
        if not isinstance(data, dict):
            return Settings()
        return Settings.from_dict(data)

    def save(self, settings: Settings) -> None:
        self._ensure_config_directory()
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e

    def set(self, key: str, value: str) -> Settings:
        """Set a single setting and persist it."""
        if key not in self.SETTABLE_KEYS:
            raise ConfigError(
                f"Unknown setting '{key}'. Valid settings: {', '.join(self.SETTABLE_KEYS)}"
            )
        value = value.strip()
        if not value:
            raise ConfigError(f"Empty value for '{key}'")
        settings = self.load()
        setattr(settings, key, value)
        self.save(settings)
        return settings

    def reset(self) -> Settings:
        settings = Settings()
        self.save(settings)
        return settings

    # ----------------------------------------------------------- Credential
    def get_api_key(self) -> str:
        """Return the API key from the environment or the key file, or ""."""
        env_key = os.environ.get(API_KEY_ENV, "").strip()
        if env_key:
            return env_key
        if not self.api_key_path.exists():
            return ""
        try:
            return self.api_key_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read API key file: {e}")
            return ""

    def store_api_key(self, api_key: str) -> None:
        """Write the API key with owner-only permissions."""
        api_key = api_key.strip()
        if not api_key:
            raise ConfigError("Empty API key")
        self._ensure_config_directory()
        try:
            fd = os.open(self.api_key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(api_key + "\n")
            os.chmod(self.api_key_path, 0o600)
        except OSError as e:
            raise ConfigError(f"Failed to store API key: {e}") from e

    def build_config(self, session_name: str = "", api_key: str | None = None) -> TutorConfig:
        """Resolve settings and credential into a TutorConfig."""
        settings = self.load()
        key = api_key if api_key is not None else self.get_api_key()
        if not key:
            raise ConfigError(
                f"API key not configured. Set {API_KEY_ENV} or run: tt --auth"
            )
        return TutorConfig(
            api_key=key,
            model=settings.model,
            language=settings.language,
            session_name=session_name or "",
        )
