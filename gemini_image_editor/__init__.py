"""Gemini Image Editor - natural-language image editing with Gemini.

This package provides a GUI application that sends an uploaded image and an
edit instruction to Google's Gemini image model and shows the result.

Modules:
    config: Settings, credential providers and logging setup.
    editor: Upload validation, request building, the Gemini client and the
        editor state machine.
    fletui: The Flet user interface.

Example:
    >>> import flet as ft
    >>> from gemini_image_editor.fletui import main
    >>> ft.app(target=main)
"""

from gemini_image_editor.config import (
    DEFAULT_DOWNLOAD_FILENAME,
    MODEL_NAME,
    ConfigurationError,
    CredentialProvider,
    EditorError,
    Settings,
    SettingsCredentialProvider,
    StaticCredentialProvider,
    configure_logging,
)
from gemini_image_editor.editor import (
    EditorSession,
    EditorState,
    EditRequest,
    ErrorKind,
    FileInput,
    GeminiGenerationClient,
    GenaiTransport,
    GenerationFailed,
    GenerationResult,
    ImageSaver,
    InvalidFileType,
    Phase,
    UploadedImage,
    build_edit_request,
    extract_first_image,
    first_file,
    ingest,
)

__all__ = [
    # Constants
    "MODEL_NAME",
    "DEFAULT_DOWNLOAD_FILENAME",
    # Configuration
    "Settings",
    "CredentialProvider",
    "SettingsCredentialProvider",
    "StaticCredentialProvider",
    "configure_logging",
    # Errors
    "EditorError",
    "ConfigurationError",
    "InvalidFileType",
    "GenerationFailed",
    # Data classes
    "FileInput",
    "UploadedImage",
    "EditRequest",
    "GenerationResult",
    "EditorState",
    "Phase",
    "ErrorKind",
    # Classes
    "GenaiTransport",
    "GeminiGenerationClient",
    "ImageSaver",
    "EditorSession",
    # Functions
    "ingest",
    "first_file",
    "build_edit_request",
    "extract_first_image",
]

__version__ = "0.1.0"
