"""Flet-based GUI for editing images with natural-language instructions.

The page has two panels: the original image with the edit instructions, and
the result returned by Gemini. All state lives in an ``EditorSession``; the
UI re-renders from it after every change.

Typical usage:
    python main.py

Or programmatically:
    import flet as ft
    from gemini_image_editor.fletui import main
    ft.app(target=main)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import flet as ft

from gemini_image_editor.config import (
    MODEL_NAME,
    Settings,
    SettingsCredentialProvider,
    configure_logging,
)
from gemini_image_editor.editor import (
    EditorSession,
    FileInput,
    GeminiGenerationClient,
    Phase,
    first_file,
    split_data_uri,
)

logger = logging.getLogger(__name__)

PROMPT_HINT: str = (
    "Describe how you want to change the image (e.g., 'Add a vintage filter', "
    "'Make it look like a sketch', 'Add a cat on the table')"
)


# =============================================================================
# PURE FUNCTIONS - Presentation Logic
# =============================================================================


@dataclass(frozen=True)
class ControlStates:
    """Enabled/visible flags for the editor controls, derived from a session."""

    prompt_disabled: bool
    generate_disabled: bool
    generate_label: str
    reset_visible: bool
    download_visible: bool
    show_loading: bool
    error_message: Optional[str]


def compute_control_states(session: EditorSession) -> ControlStates:
    """Derive control flags from the session.

    Example:
        >>> states = compute_control_states(EditorSession(client))
        >>> states.generate_disabled, states.reset_visible
        (True, False)
    """
    loading = session.phase is Phase.LOADING
    return ControlStates(
        prompt_disabled=session.image is None,
        generate_disabled=not session.can_generate,
        generate_label="Processing..." if session.in_flight else "Generate",
        reset_visible=session.image is not None,
        download_visible=session.result_uri is not None,
        show_loading=loading,
        error_message=session.error_message,
    )


# =============================================================================
# SIDE EFFECTS - UI Updates
# =============================================================================


@dataclass
class EditorControls:
    """References to the controls the UIUpdater rewrites on each render."""

    original_container: ft.Container
    result_container: ft.Container
    prompt_field: ft.TextField
    generate_btn: ft.ElevatedButton
    reset_btn: ft.TextButton
    change_btn: ft.TextButton
    download_btn: ft.TextButton
    error_text: ft.Text


class UIUpdater:
    """Apply session state to the Flet controls and refresh the page.

    All methods call page.update() after making changes.

    Attributes:
        page: The Flet Page instance to update.
    """

    def __init__(self, page: ft.Page) -> None:
        self.page: ft.Page = page

    def update_status(self, message: str, status_component: ft.Text) -> None:
        status_component.value = message
        self.page.update()

    @staticmethod
    def image_view(image_base64: str) -> ft.Container:
        """Image scaled to fit its panel without distortion."""
        return ft.Container(
            content=ft.Image(
                src_base64=image_base64,
                fit=ft.ImageFit.CONTAIN,
                expand=True,
            ),
            expand=True,
            alignment=ft.alignment.center,
            border_radius=8,
            clip_behavior=ft.ClipBehavior.HARD_EDGE,
        )

    @staticmethod
    def placeholder(icon: str, title: str, subtitle: str) -> ft.Column:
        return ft.Column(
            [
                ft.Icon(icon, size=40, color=ft.Colors.GREY_400),
                ft.Text(title, size=16, weight=ft.FontWeight.W_500, color=ft.Colors.GREY_700),
                ft.Text(subtitle, size=12, color=ft.Colors.GREY_500, text_align=ft.TextAlign.CENTER),
            ],
            horizontal_alignment=ft.CrossAxisAlignment.CENTER,
            alignment=ft.MainAxisAlignment.CENTER,
        )

    def render(self, session: EditorSession, controls: EditorControls) -> None:
        """Rebuild both panels and control flags from ``session``."""
        states = compute_control_states(session)

        if session.image is not None:
            controls.original_container.content = self.image_view(session.image.encoded_data)
        else:
            controls.original_container.content = self.placeholder(
                ft.Icons.UPLOAD, "Upload an image", "Click to browse"
            )

        if states.show_loading:
            controls.result_container.content = ft.Column(
                [
                    ft.ProgressRing(width=48, height=48, color=ft.Colors.INDIGO_600),
                    ft.Text("Creating magic...", size=13, color=ft.Colors.GREY_600),
                ],
                horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                alignment=ft.MainAxisAlignment.CENTER,
            )
        elif session.result_uri is not None:
            _, payload = split_data_uri(session.result_uri)
            controls.result_container.content = self.image_view(payload)
        else:
            controls.result_container.content = self.placeholder(
                ft.Icons.IMAGE,
                "No result yet",
                "Upload an image and describe changes to see the result here",
            )

        controls.prompt_field.disabled = states.prompt_disabled
        controls.generate_btn.disabled = states.generate_disabled
        controls.generate_btn.text = states.generate_label
        controls.generate_btn.icon = ft.Icons.HOURGLASS_TOP if session.in_flight else ft.Icons.AUTO_FIX_HIGH
        controls.reset_btn.visible = states.reset_visible
        controls.change_btn.visible = states.reset_visible
        controls.download_btn.visible = states.download_visible
        controls.error_text.value = states.error_message or ""
        controls.error_text.visible = states.error_message is not None

        self.page.update()


# =============================================================================
# APPLICATION
# =============================================================================


def main(page: ft.Page) -> None:
    """Main Flet application entry point.

    Builds the two-panel layout, wires the file picker and buttons to an
    EditorSession, and reports missing configuration on the status line.

    Args:
        page: Flet page object for UI rendering.
    """
    settings = Settings.load()
    configure_logging(settings.debug)

    page.title = f"Image Editor (using model {MODEL_NAME})"
    page.theme_mode = ft.ThemeMode.LIGHT
    page.window.width = 1200
    page.window.height = 800

    status_text = ft.Text("Upload an image to get started", size=14)
    error_text = ft.Text("", size=13, color=ft.Colors.RED_600, visible=False)

    def pick_image(_: ft.ControlEvent) -> None:
        file_picker.pick_files(
            dialog_title="Choose an image",
            allow_multiple=False,
            file_type=ft.FilePickerFileType.IMAGE,
        )

    original_container = ft.Container(
        border=ft.border.all(1, ft.Colors.GREY_400),
        alignment=ft.alignment.center,
        border_radius=8,
        expand=True,
        bgcolor=ft.Colors.GREY_50,
        on_click=pick_image,
    )
    result_container = ft.Container(
        border=ft.border.all(1, ft.Colors.GREY_300),
        alignment=ft.alignment.center,
        border_radius=8,
        expand=True,
        bgcolor=ft.Colors.GREY_50,
    )

    prompt_field = ft.TextField(
        label="Edit Instructions",
        hint_text=PROMPT_HINT,
        multiline=True,
        min_lines=3,
        max_lines=4,
        disabled=True,
    )
    generate_btn = ft.ElevatedButton("Generate", icon=ft.Icons.AUTO_FIX_HIGH, disabled=True)
    reset_btn = ft.TextButton("Reset", icon=ft.Icons.REFRESH, visible=False)
    change_btn = ft.TextButton("Change Image", icon=ft.Icons.UPLOAD_FILE, visible=False, on_click=pick_image)
    download_btn = ft.TextButton("Download", icon=ft.Icons.DOWNLOAD, visible=False)

    controls = EditorControls(
        original_container=original_container,
        result_container=result_container,
        prompt_field=prompt_field,
        generate_btn=generate_btn,
        reset_btn=reset_btn,
        change_btn=change_btn,
        download_btn=download_btn,
        error_text=error_text,
    )

    ui_updater = UIUpdater(page)
    client = GeminiGenerationClient(SettingsCredentialProvider(settings))
    session = EditorSession(client, on_change=lambda s: ui_updater.render(s, controls))

    def on_files_picked(e: ft.FilePickerResultEvent) -> None:
        picked = first_file(e.files)
        if picked is None:
            return
        if not picked.path:
            ui_updater.update_status(f"Cannot read {picked.name} from this device", status_text)
            return
        try:
            file_input = FileInput.from_path(picked.path)
        except OSError as exc:
            logger.warning("Could not read %s: %s", picked.path, exc)
            ui_updater.update_status(f"Could not read {picked.name}: {exc}", status_text)
            return
        if session.upload_image(file_input):
            ui_updater.update_status(f"Loaded {picked.name}", status_text)

    # Flet desktop delivers no OS file drops; EditorSession.upload_dropped serves hosts that do
    file_picker = ft.FilePicker(on_result=on_files_picked)
    page.overlay.append(file_picker)

    def on_prompt_change(e: ft.ControlEvent) -> None:
        session.set_prompt(e.control.value)

    async def on_generate_click(_: ft.ControlEvent) -> None:
        if not session.can_generate:
            return
        ui_updater.update_status("Generating image...", status_text)
        applied = await session.generate()
        if not applied:
            ui_updater.update_status("Ready", status_text)
        elif session.phase is Phase.DONE:
            ui_updater.update_status("Image generated successfully!", status_text)
        else:
            ui_updater.update_status("Generation did not produce an image", status_text)

    def on_reset_click(_: ft.ControlEvent) -> None:
        prompt_field.value = ""
        session.reset()
        ui_updater.update_status("Upload an image to get started", status_text)

    def on_download_click(_: ft.ControlEvent) -> None:
        try:
            path = session.download(settings.download_dir)
        except (OSError, ValueError) as exc:
            logger.warning("Download failed: %s", exc)
            ui_updater.update_status(f"Could not save image: {exc}", status_text)
            return
        if path:
            ui_updater.update_status(f"Image saved as {path}", status_text)
        else:
            ui_updater.update_status("No image to save", status_text)

    prompt_field.on_change = on_prompt_change
    generate_btn.on_click = on_generate_click
    reset_btn.on_click = on_reset_click
    download_btn.on_click = on_download_click

    page.add(
        ft.Container(
            content=ft.Column(
                [
                    ft.Text("Image Editor", size=24, weight=ft.FontWeight.BOLD),
                    ft.Row(
                        [
                            # Input panel
                            ft.Column(
                                [
                                    ft.Row(
                                        [
                                            ft.Text("Original Image", size=18, weight=ft.FontWeight.BOLD),
                                            ft.Row([change_btn, reset_btn], spacing=5),
                                        ],
                                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                                    ),
                                    original_container,
                                    prompt_field,
                                    ft.Row([generate_btn], alignment=ft.MainAxisAlignment.END),
                                    error_text,
                                ],
                                spacing=10,
                                expand=True,
                            ),
                            # Result panel
                            ft.Column(
                                [
                                    ft.Row(
                                        [
                                            ft.Text("Result", size=18, weight=ft.FontWeight.BOLD),
                                            download_btn,
                                        ],
                                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                                    ),
                                    result_container,
                                ],
                                spacing=10,
                                expand=True,
                            ),
                        ],
                        spacing=20,
                        expand=True,
                        vertical_alignment=ft.CrossAxisAlignment.STRETCH,
                    ),
                    status_text,
                ],
                spacing=10,
                expand=True,
            ),
            padding=20,
            expand=True,
        )
    )

    ui_updater.render(session, controls)

    problems = settings.missing_configuration()
    if problems:
        logger.error("Configuration incomplete: %s", "; ".join(problems))
        ui_updater.update_status(
            "Gemini API key is not configured. Set GEMINI_API_KEY in your environment or .env file.",
            status_text,
        )
