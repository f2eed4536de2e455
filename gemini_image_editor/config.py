"""Configuration, credential lookup and logging setup for the image editor.

Settings are read once from the environment (after loading an optional
``.env`` file). The generation client never reads the environment itself: it
asks a ``CredentialProvider`` for the API key, which keeps it testable with a
fake credential.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Protocol

from dotenv import find_dotenv, load_dotenv

MODEL_NAME: str = "gemini-2.5-flash-image"
"""Gemini model used for image editing."""

DEFAULT_DOWNLOAD_FILENAME: str = "edited-image.png"
"""Filename used when the result image is downloaded."""

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


class EditorError(Exception):
    """Base class for errors surfaced to the editor user."""


class ConfigurationError(EditorError):
    """The Gemini API key is missing."""

    def __init__(self, message: str = "Gemini API key is not configured. Please check your settings.") -> None:
        super().__init__(message)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the editor.

    Attributes:
        api_key: Gemini API key, or None when not configured.
        download_dir: Directory where downloaded results are written.
        debug: Enables debug logging.
    """

    api_key: Optional[str]
    download_dir: str
    debug: bool = False

    @staticmethod
    def load(dotenv: bool = True) -> "Settings":
        """Build settings from ``.env`` and the process environment.

        Args:
            dotenv: Whether to load a ``.env`` file first. Existing
                environment variables are never overridden by it.

        Returns:
            A Settings instance. A missing API key is not an error here;
            see ``missing_configuration``.
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        api_key = None
        for name in API_KEY_ENV_VARS:
            value = (os.getenv(name) or "").strip()
            if value:
                api_key = value
                break

        return Settings(
            api_key=api_key,
            download_dir=os.path.abspath(os.getenv("EDITOR_DOWNLOAD_DIR") or os.getcwd()),
            debug=_env_flag("EDITOR_DEBUG"),
        )

    def missing_configuration(self) -> List[str]:
        """List configuration problems detectable at startup."""
        problems = []
        if not self.api_key:
            problems.append(f"{API_KEY_ENV_VARS[0]} is not set")
        return problems


class CredentialProvider(Protocol):
    """Source of the Gemini API key."""

    def get_api_key(self) -> str:
        """Return a non-empty API key or raise ConfigurationError."""
        ...


class SettingsCredentialProvider:
    """Reads the API key from loaded Settings."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_api_key(self) -> str:
        if not self._settings.api_key:
            raise ConfigurationError()
        return self._settings.api_key


class StaticCredentialProvider:
    """Fixed API key, mainly for tests and embedding."""

    def __init__(self, api_key: Optional[str]) -> None:
        self._api_key = (api_key or "").strip()

    def get_api_key(self) -> str:
        if not self._api_key:
            raise ConfigurationError()
        return self._api_key


def configure_logging(debug: bool = False) -> None:
    """Install a single stdout handler on the root logger.

    Calling it more than once only adjusts the level.
    """
    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if getattr(root_logger, "_image_editor_configured", False):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root_logger.addHandler(handler)
    root_logger._image_editor_configured = True  # type: ignore[attr-defined]
