"""Upload, edit-request and generation flow for the Gemini image editor.

The module is organized in the same layers as the UI code that drives it:

* pure functions that validate uploads, build edit requests and scan model
  responses,
* side-effect classes that talk to the Gemini API and write files,
* the ``EditorSession`` state machine that coordinates both.

Typical usage:
    client = GeminiGenerationClient(StaticCredentialProvider(api_key))
    session = EditorSession(client)
    session.upload_image(FileInput.from_path("cat.jpg"))
    session.set_prompt("make it a watercolor painting")
    await session.generate()
    session.download(".")
"""

import base64
import io
import logging
import mimetypes
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from PIL import Image

from gemini_image_editor.config import (
    DEFAULT_DOWNLOAD_FILENAME,
    MODEL_NAME,
    ConfigurationError,
    CredentialProvider,
    EditorError,
)

logger = logging.getLogger(__name__)

INVALID_FILE_TYPE_MESSAGE: str = "Please upload an image file."
NO_IMAGE_MESSAGE: str = "No image was generated. Please try a different prompt."
GENERATION_FAILED_MESSAGE: str = "Failed to generate image. Please try again."

FALLBACK_RESULT_MEDIA_TYPE: str = "image/png"
"""Media type used for result URIs when the model does not tag its output."""

T = TypeVar("T")


class InvalidFileType(EditorError):
    """The selected or dropped file is not an image."""

    def __init__(self, content_type: str = "") -> None:
        super().__init__(INVALID_FILE_TYPE_MESSAGE)
        self.content_type = content_type


class GenerationFailed(EditorError):
    """The Gemini API call failed."""


class Phase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"
    FAILED = "failed"


class ErrorKind(Enum):
    CONFIGURATION = "configuration"
    NO_IMAGE = "no_image"
    GENERATION_FAILED = "generation_failed"


# =============================================================================
# DATA MODEL
# =============================================================================


@dataclass(frozen=True)
class FileInput:
    """A single file handed over by the picker or a drop event.

    Attributes:
        name: Original file name, used for logging only.
        content_type: Declared media type, e.g. ``image/jpeg``.
        data: Raw file content.
    """

    name: str
    content_type: str
    data: bytes

    @classmethod
    def from_path(cls, path: str) -> "FileInput":
        """Read a local file, guessing its media type from the file name.

        When the name gives no hint, Pillow identifies the content instead.
        """
        content_type, _ = mimetypes.guess_type(path)
        with open(path, "rb") as fh:
            data = fh.read()
        if content_type is None:
            content_type = sniff_image_media_type(data)
        return cls(
            name=os.path.basename(path),
            content_type=content_type or "application/octet-stream",
            data=data,
        )


@dataclass(frozen=True)
class UploadedImage:
    """A validated upload.

    Attributes:
        encoded_data: Base64 payload without the data URI prefix.
        media_type: Media type of the payload.
        source_uri: Full data URI, used for previews.
        name: Original file name.
    """

    encoded_data: str
    media_type: str
    source_uri: str
    name: str = ""


@dataclass(frozen=True)
class InlineImagePart:
    media_type: str
    data: str


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class EditRequest:
    """One generation attempt: an image and the instruction to apply to it."""

    image: UploadedImage
    instruction_text: str

    @property
    def parts(self) -> Tuple[InlineImagePart, TextPart]:
        # The model reads the image first, then the instruction.
        return (
            InlineImagePart(media_type=self.image.media_type, data=self.image.encoded_data),
            TextPart(text=self.instruction_text),
        )


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one attempt. Exactly one of result_uri and error_message is set."""

    result_uri: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, result_uri: str) -> "GenerationResult":
        return cls(result_uri=result_uri)

    @classmethod
    def failure(cls, message: str, kind: ErrorKind) -> "GenerationResult":
        return cls(error_message=message, error_kind=kind)

    @property
    def ok(self) -> bool:
        return self.result_uri is not None


@dataclass(frozen=True)
class EditorState:
    """Generation lifecycle of a session as a single tagged value.

    Only the constructors below should be used, so a loading state never
    carries a result and a done state always does.
    """

    phase: Phase
    result_uri: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @staticmethod
    def idle() -> "EditorState":
        return EditorState(Phase.IDLE)

    @staticmethod
    def loading() -> "EditorState":
        return EditorState(Phase.LOADING)

    @staticmethod
    def done(result_uri: str) -> "EditorState":
        return EditorState(Phase.DONE, result_uri=result_uri)

    @staticmethod
    def failed(message: str, kind: ErrorKind) -> "EditorState":
        return EditorState(Phase.FAILED, error_message=message, error_kind=kind)

    @staticmethod
    def from_result(result: GenerationResult) -> "EditorState":
        if result.result_uri is not None:
            return EditorState.done(result.result_uri)
        return EditorState.failed(
            result.error_message or GENERATION_FAILED_MESSAGE,
            result.error_kind or ErrorKind.GENERATION_FAILED,
        )


# =============================================================================
# PURE FUNCTIONS - Business Logic Layer
# =============================================================================


def to_data_uri(media_type: str, encoded_data: str) -> str:
    """Build a ``data:`` URI from a media type and a base64 payload.

    Example:
        >>> to_data_uri("image/png", "ABC123")
        'data:image/png;base64,ABC123'
    """
    return f"data:{media_type};base64,{encoded_data}"


def split_data_uri(uri: str) -> Tuple[str, str]:
    """Split a base64 data URI into (media_type, payload).

    Raises:
        ValueError: If ``uri`` is not a base64 data URI.
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("not a base64 data URI")
    return header[len("data:"):-len(";base64")], payload


def first_file(files: Optional[Sequence[T]]) -> Optional[T]:
    """Return the first of the selected or dropped files, if any."""
    if not files:
        return None
    return files[0]


def ingest(file: FileInput) -> UploadedImage:
    """Validate an uploaded file and encode it for preview and transmission.

    Args:
        file: The single file taken from the picker or a drop event.

    Returns:
        The encoded upload.

    Raises:
        InvalidFileType: If the declared content type is not ``image/*``.
    """
    content_type = (file.content_type or "").strip().lower()
    if not content_type.startswith("image/"):
        raise InvalidFileType(file.content_type)

    encoded = base64.b64encode(file.data).decode("ascii")
    return UploadedImage(
        encoded_data=encoded,
        media_type=content_type,
        source_uri=to_data_uri(content_type, encoded),
        name=file.name,
    )


def build_edit_request(image: UploadedImage, instruction_text: str) -> EditRequest:
    """Combine an upload and an instruction into one generation request.

    No validation happens here; the UI disables the generate action while
    the instruction is empty.
    """
    return EditRequest(image=image, instruction_text=instruction_text)


def _iter_response_parts(response: Any) -> Iterable[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return getattr(content, "parts", None) or []


def extract_first_image(response: Any) -> Optional[Tuple[str, str]]:
    """Find the first inline image among the parts of the first candidate.

    Scanning stops at the first part carrying inline data; anything after it
    is ignored, even other images.

    Args:
        response: A ``GenerateContentResponse`` or any object with the same
            ``candidates[0].content.parts[*].inline_data`` shape.

    Returns:
        ``(media_type, base64_payload)``, or None when no part has image data.
    """
    for part in _iter_response_parts(response):
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        if not data:
            continue
        if isinstance(data, (bytes, bytearray)):
            payload = base64.b64encode(bytes(data)).decode("ascii")
        else:
            payload = str(data)
        media_type = getattr(inline_data, "mime_type", None) or ""
        if not media_type.startswith("image/"):
            media_type = FALLBACK_RESULT_MEDIA_TYPE
        return media_type, payload
    return None


def sniff_image_media_type(data: bytes) -> Optional[str]:
    """Identify image content with Pillow.

    Returns:
        The media type, e.g. ``image/webp``, or None for non-image data.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.get_format_mimetype()
    except (OSError, ValueError):
        return None


def decode_data_uri(uri: str) -> bytes:
    """Decode the payload of a base64 data URI.

    Raises:
        ValueError: If the URI or its base64 payload is malformed.
    """
    _, payload = split_data_uri(uri)
    return base64.b64decode(payload, validate=True)


def to_genai_parts(request: EditRequest) -> List[types.Part]:
    """Convert request parts to google-genai ``Part`` objects, keeping order."""
    parts = []
    for part in request.parts:
        if isinstance(part, InlineImagePart):
            parts.append(
                types.Part.from_bytes(data=base64.b64decode(part.data), mime_type=part.media_type)
            )
        else:
            parts.append(types.Part.from_text(text=part.text))
    return parts


# =============================================================================
# SIDE EFFECTS - I/O Operations Layer
# =============================================================================


class GenaiTransport:
    """Sends edit requests to Gemini through the google-genai SDK."""

    def __init__(self, api_key: str) -> None:
        self._client = genai.Client(api_key=api_key)

    async def generate_content(self, model: str, request: EditRequest) -> types.GenerateContentResponse:
        contents = [types.Content(role="user", parts=to_genai_parts(request))]
        try:
            return await self._client.aio.models.generate_content(model=model, contents=contents)
        except genai_errors.APIError as exc:
            raise GenerationFailed(exc.message or str(exc)) from exc


TransportFactory = Callable[[str], Any]


class GeminiGenerationClient:
    """Runs a single edit attempt against the remote model.

    The client never raises for expected failures. A missing API key, a
    response without image data and transport errors all come back as a
    failed ``GenerationResult``.

    Attributes:
        model: Model identifier sent with every request.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        transport_factory: TransportFactory = GenaiTransport,
        model: str = MODEL_NAME,
    ) -> None:
        self._credentials = credentials
        self._transport_factory = transport_factory
        self._transport: Any = None
        self._transport_key: Optional[str] = None
        self.model: str = model

    def _get_transport(self, api_key: str) -> Any:
        # one SDK client per key, reused across attempts
        if self._transport is None or self._transport_key != api_key:
            self._transport = self._transport_factory(api_key)
            self._transport_key = api_key
        return self._transport

    async def generate(self, request: EditRequest) -> GenerationResult:
        """Send ``request`` once and return the first image in the response."""
        try:
            api_key = self._credentials.get_api_key()
        except ConfigurationError as exc:
            logger.error("Generation aborted: %s", exc)
            return GenerationResult.failure(str(exc), ErrorKind.CONFIGURATION)

        logger.info(
            "Generating with model=%s media_type=%s prompt_chars=%d",
            self.model,
            request.image.media_type,
            len(request.instruction_text),
        )
        t0 = time.monotonic()
        try:
            transport = self._get_transport(api_key)
            response = await transport.generate_content(self.model, request)
            found = extract_first_image(response)
        except Exception as exc:
            logger.exception("Error generating image")
            return GenerationResult.failure(
                str(exc) or GENERATION_FAILED_MESSAGE, ErrorKind.GENERATION_FAILED
            )
        latency_ms = int((time.monotonic() - t0) * 1000)

        if found is None:
            logger.warning("Response contained no image data (latency_ms=%d)", latency_ms)
            return GenerationResult.failure(NO_IMAGE_MESSAGE, ErrorKind.NO_IMAGE)

        media_type, payload = found
        logger.info("Received %s result (latency_ms=%d)", media_type, latency_ms)
        return GenerationResult.success(to_data_uri(media_type, payload))


class ImageSaver:
    """Handle saving result images to disk."""

    @staticmethod
    def save_image(data: bytes, filename: str) -> str:
        """Write encoded image bytes exactly as the model returned them.

        Raises:
            OSError: If the file cannot be written.
        """
        with open(filename, "wb") as fh:
            fh.write(data)
        return filename


# =============================================================================
# ORCHESTRATION LAYER - Editor State Machine
# =============================================================================


class EditorSession:
    """Page-lifetime state of the editor.

    The image and prompt are plain fields that can be changed at any time.
    The generation lifecycle lives in ``state``. At most one generation is
    in flight; calling ``generate`` meanwhile does nothing.

    Attributes:
        image: The current upload, or None.
        prompt: The edit instruction as typed.
        state: Current EditorState.
        notice: Message left by a rejected upload, or None.
        on_change: Called with the session after every change.
    """

    def __init__(
        self,
        client: GeminiGenerationClient,
        on_change: Optional[Callable[["EditorSession"], None]] = None,
    ) -> None:
        self.client = client
        self.on_change = on_change
        self.image: Optional[UploadedImage] = None
        self.prompt: str = ""
        self.state: EditorState = EditorState.idle()
        self.notice: Optional[str] = None
        self._in_flight: bool = False
        self._attempt: int = 0

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def result_uri(self) -> Optional[str]:
        return self.state.result_uri

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def can_generate(self) -> bool:
        return self.image is not None and bool(self.prompt.strip()) and not self._in_flight

    @property
    def error_message(self) -> Optional[str]:
        """The single inline message to show, if any."""
        return self.notice or self.state.error_message

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def upload_image(self, file: FileInput) -> bool:
        """Replace the current image with ``file``.

        Returns:
            True if the file was accepted. A rejected file leaves the image
            and state untouched and sets ``notice``.
        """
        try:
            image = ingest(file)
        except InvalidFileType as exc:
            logger.info("Rejected upload name=%s content_type=%s", file.name, exc.content_type)
            self.notice = str(exc)
            self._notify()
            return False

        logger.info("Uploaded name=%s media_type=%s bytes=%d", file.name, image.media_type, len(file.data))
        self.image = image
        self.notice = None
        if not self._in_flight:
            self.state = EditorState.idle()
        self._notify()
        return True

    def upload_dropped(self, files: Sequence[FileInput]) -> bool:
        """Upload the first of the dropped files; extra files are ignored."""
        file = first_file(files)
        if file is None:
            return False
        if len(files) > 1:
            logger.debug("Ignoring %d extra dropped files", len(files) - 1)
        return self.upload_image(file)

    def set_prompt(self, text: Optional[str]) -> None:
        self.prompt = text or ""
        self._notify()

    async def generate(self) -> bool:
        """Run one edit attempt with the current image and prompt.

        Returns:
            True if an attempt ran and its outcome was applied, False if the
            call was a no-op or the outcome was discarded after a reset.
        """
        if not self.can_generate:
            logger.debug("Generate ignored (in_flight=%s)", self._in_flight)
            return False

        self._attempt += 1
        attempt = self._attempt
        request = build_edit_request(self.image, self.prompt)
        self._in_flight = True
        self.notice = None
        self.state = EditorState.loading()
        self._notify()

        try:
            result = await self.client.generate(request)
        except Exception:
            logger.exception("Generation client raised")
            result = GenerationResult.failure(GENERATION_FAILED_MESSAGE, ErrorKind.GENERATION_FAILED)
        finally:
            self._in_flight = False

        if attempt != self._attempt:
            logger.info("Discarding outcome of attempt %d after reset", attempt)
            self._notify()
            return False

        self.state = EditorState.from_result(result)
        self._notify()
        return True

    def reset(self) -> None:
        """Clear image, prompt, result and messages."""
        if self._in_flight:
            # the pending attempt's outcome will be dropped
            self._attempt += 1
        self.image = None
        self.prompt = ""
        self.notice = None
        self.state = EditorState.idle()
        self._notify()

    def download(self, directory: str, filename: str = DEFAULT_DOWNLOAD_FILENAME) -> Optional[str]:
        """Save the current result image into ``directory``.

        Returns:
            The written path, or None when there is no result to save.

        Raises:
            ValueError: If the result payload is not valid base64.
            OSError: If the file cannot be written.
        """
        if self.state.result_uri is None:
            return None
        data = decode_data_uri(self.state.result_uri)
        path = ImageSaver.save_image(data, os.path.join(directory, filename))
        logger.info("Saved result to %s", path)
        return path
