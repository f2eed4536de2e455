#!/usr/bin/env python3
"""Entry point for the Gemini Image Editor application.

Usage:
    python main.py

Or with uv:
    uv run main.py

Set GEMINI_API_KEY in the environment or in a .env file first. The
application opens a desktop window with the editor.
"""

import flet as ft

from gemini_image_editor.fletui import main


def run() -> None:
    """Launch the Gemini Image Editor application."""
    ft.app(target=main)


if __name__ == "__main__":
    run()
