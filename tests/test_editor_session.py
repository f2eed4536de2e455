"""
Tests for the editor state machine
"""
import asyncio
import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from gemini_image_editor.config import DEFAULT_DOWNLOAD_FILENAME
from gemini_image_editor.editor import (
    INVALID_FILE_TYPE_MESSAGE,
    NO_IMAGE_MESSAGE,
    EditorSession,
    EditorState,
    ErrorKind,
    GenerationResult,
    Phase,
)


class FakeClient:
    """Client stub returning a preset result, optionally held until released"""

    def __init__(self, result, gated=False):
        self.result = result
        self.gated = gated
        self.release = asyncio.Event()
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if self.gated:
            await self.release.wait()
        return self.result


@pytest.fixture
def done_result():
    return GenerationResult.success("data:image/png;base64,ABC123")


def ready_session(client, image, prompt="add a hat"):
    session = EditorSession(client)
    session.upload_image(image)
    session.set_prompt(prompt)
    return session


@pytest.mark.unit
class TestUpload:

    def test_initial_state(self, done_result):
        session = EditorSession(FakeClient(done_result))
        assert session.state == EditorState.idle()
        assert session.image is None
        assert session.prompt == ""
        assert not session.can_generate

    def test_invalid_file_keeps_existing_image(self, done_result, cat_jpg, notes_txt):
        session = EditorSession(FakeClient(done_result))
        session.upload_image(cat_jpg)
        before = session.image

        assert session.upload_image(notes_txt) is False
        assert session.image is before
        assert session.phase is Phase.IDLE
        assert session.error_message == INVALID_FILE_TYPE_MESSAGE

    @pytest.mark.asyncio
    async def test_invalid_file_keeps_result(self, done_result, cat_jpg, notes_txt):
        session = ready_session(FakeClient(done_result), cat_jpg)
        await session.generate()

        session.upload_image(notes_txt)

        assert session.phase is Phase.DONE
        assert session.result_uri == done_result.result_uri

    @pytest.mark.asyncio
    async def test_reupload_clears_result(self, done_result, cat_jpg, dog_png):
        session = ready_session(FakeClient(done_result), cat_jpg)
        await session.generate()
        assert session.phase is Phase.DONE

        assert session.upload_image(dog_png) is True

        assert session.image.name == "dog.png"
        assert session.state == EditorState.idle()
        assert session.result_uri is None
        assert session.prompt == "add a hat"

    def test_valid_upload_clears_notice(self, done_result, cat_jpg, notes_txt):
        session = EditorSession(FakeClient(done_result))
        session.upload_image(notes_txt)
        session.upload_image(cat_jpg)
        assert session.error_message is None

    def test_drop_uses_first_file(self, done_result, cat_jpg, dog_png):
        session = EditorSession(FakeClient(done_result))
        assert session.upload_dropped([dog_png, cat_jpg]) is True
        assert session.image.name == "dog.png"

    def test_drop_validates_like_selection(self, done_result, notes_txt, cat_jpg):
        session = EditorSession(FakeClient(done_result))
        assert session.upload_dropped([notes_txt, cat_jpg]) is False
        assert session.image is None
        assert session.error_message == INVALID_FILE_TYPE_MESSAGE

    def test_empty_drop_is_ignored(self, done_result):
        session = EditorSession(FakeClient(done_result))
        assert session.upload_dropped([]) is False
        assert session.error_message is None

    def test_change_listener_called(self, done_result, cat_jpg):
        seen = []
        session = EditorSession(FakeClient(done_result), on_change=lambda s: seen.append(s.phase))
        session.upload_image(cat_jpg)
        session.set_prompt("x")
        assert seen == [Phase.IDLE, Phase.IDLE]


@pytest.mark.unit
@pytest.mark.asyncio
class TestGenerate:

    async def test_watercolor_scenario(self, make_client, make_transport, responses, cat_jpg):
        transport = make_transport(response=responses.build(responses.image("ABC123", "image/png")))
        session = ready_session(make_client(transport), cat_jpg, "make it a watercolor painting")

        assert await session.generate() is True

        assert session.phase is Phase.DONE
        assert session.result_uri == "data:image/png;base64,ABC123"
        request = transport.calls[0][1]
        assert request.image.media_type == "image/jpeg"
        assert request.instruction_text == "make it a watercolor painting"

    async def test_text_only_response_scenario(self, make_client, make_transport, responses, cat_jpg):
        transport = make_transport(response=responses.build(responses.text("I'd rather not.")))
        session = ready_session(make_client(transport), cat_jpg)

        await session.generate()

        assert session.phase is Phase.FAILED
        assert session.state.error_kind is ErrorKind.NO_IMAGE
        assert session.error_message.startswith("No image was generated.")
        assert session.error_message == NO_IMAGE_MESSAGE
        assert session.result_uri is None

    async def test_missing_credential_fails_without_call(self, make_client, make_transport, responses, cat_jpg):
        transport = make_transport(response=responses.build(responses.image("ABC123")))
        session = ready_session(make_client(transport, api_key=""), cat_jpg)

        await session.generate()

        assert session.phase is Phase.FAILED
        assert session.state.error_kind is ErrorKind.CONFIGURATION
        assert transport.calls == []

    async def test_requires_image(self, done_result):
        client = FakeClient(done_result)
        session = EditorSession(client)
        session.set_prompt("add a hat")

        assert await session.generate() is False
        assert client.requests == []
        assert session.phase is Phase.IDLE

    @pytest.mark.parametrize("prompt", ["", "   "])
    async def test_requires_prompt(self, done_result, cat_jpg, prompt):
        client = FakeClient(done_result)
        session = ready_session(client, cat_jpg, prompt)

        assert await session.generate() is False
        assert client.requests == []

    async def test_repeated_generate_while_loading_is_noop(self, done_result, cat_jpg):
        client = FakeClient(done_result, gated=True)
        session = ready_session(client, cat_jpg)

        task = asyncio.create_task(session.generate())
        await asyncio.sleep(0)
        assert session.phase is Phase.LOADING
        assert not session.can_generate

        for _ in range(5):
            assert await session.generate() is False

        client.release.set()
        assert await task is True
        assert len(client.requests) == 1
        assert session.phase is Phase.DONE

    async def test_prompt_editable_while_loading(self, done_result, cat_jpg):
        client = FakeClient(done_result, gated=True)
        session = ready_session(client, cat_jpg)

        task = asyncio.create_task(session.generate())
        await asyncio.sleep(0)
        session.set_prompt("something else")
        assert session.phase is Phase.LOADING

        client.release.set()
        await task
        assert session.prompt == "something else"
        assert client.requests[0].instruction_text == "add a hat"

    async def test_upload_while_loading_keeps_in_flight_result(self, done_result, cat_jpg, dog_png):
        client = FakeClient(done_result, gated=True)
        session = ready_session(client, cat_jpg)

        task = asyncio.create_task(session.generate())
        await asyncio.sleep(0)
        session.upload_image(dog_png)
        assert session.phase is Phase.LOADING

        client.release.set()
        await task
        assert session.image.name == "dog.png"
        assert session.phase is Phase.DONE

    async def test_retry_after_failure(self, cat_jpg, done_result):
        client = FakeClient(GenerationResult.failure("boom", ErrorKind.GENERATION_FAILED))
        session = ready_session(client, cat_jpg)

        await session.generate()
        assert session.state == EditorState.failed("boom", ErrorKind.GENERATION_FAILED)

        client.result = done_result
        assert await session.generate() is True
        assert session.phase is Phase.DONE
        assert session.error_message is None

    async def test_client_exception_becomes_failed_state(self, cat_jpg):
        class ExplodingClient:
            async def generate(self, request):
                raise RuntimeError("unexpected")

        session = ready_session(ExplodingClient(), cat_jpg)

        assert await session.generate() is True
        assert session.phase is Phase.FAILED
        assert session.state.error_kind is ErrorKind.GENERATION_FAILED
        assert not session.in_flight


@pytest.mark.unit
@pytest.mark.asyncio
class TestReset:

    async def test_reset_after_done(self, done_result, cat_jpg):
        session = ready_session(FakeClient(done_result), cat_jpg)
        await session.generate()

        session.reset()

        assert session.state == EditorState.idle()
        assert session.image is None
        assert session.prompt == ""
        assert session.result_uri is None
        assert session.error_message is None

    async def test_reset_while_loading_discards_outcome(self, done_result, cat_jpg, dog_png):
        client = FakeClient(done_result, gated=True)
        session = ready_session(client, cat_jpg)

        task = asyncio.create_task(session.generate())
        await asyncio.sleep(0)
        session.reset()
        session.upload_image(dog_png)
        session.set_prompt("new prompt")

        assert session.phase is Phase.IDLE
        assert not session.can_generate
        assert await session.generate() is False

        client.release.set()
        assert await task is False
        assert session.phase is Phase.IDLE
        assert session.result_uri is None
        assert session.can_generate
        assert len(client.requests) == 1


@pytest.mark.unit
class TestDownload:

    @pytest.mark.asyncio
    async def test_download_writes_default_filename(self, tmp_path, png_b64, cat_jpg):
        client = FakeClient(GenerationResult.success(f"data:image/png;base64,{png_b64}"))
        session = ready_session(client, cat_jpg)
        await session.generate()

        path = session.download(str(tmp_path))

        assert Path(path) == tmp_path / DEFAULT_DOWNLOAD_FILENAME
        with Image.open(path) as saved:
            assert saved.size == (4, 3)
        assert session.phase is Phase.DONE

    @pytest.mark.asyncio
    async def test_download_writes_payload_bytes_unchanged(self, tmp_path, cat_jpg):
        buffer = io.BytesIO()
        Image.new("RGB", (5, 5), (0, 0, 255)).save(buffer, format="JPEG")
        payload = base64.b64encode(buffer.getvalue()).decode("ascii")
        session = ready_session(FakeClient(GenerationResult.success(f"data:image/jpeg;base64,{payload}")), cat_jpg)
        await session.generate()

        path = session.download(str(tmp_path))

        assert Path(path).read_bytes() == buffer.getvalue()

    @pytest.mark.asyncio
    async def test_download_does_not_require_decodable_image(self, tmp_path, cat_jpg):
        session = ready_session(FakeClient(GenerationResult.success("data:image/png;base64,AAECAw==")), cat_jpg)
        await session.generate()

        path = session.download(str(tmp_path))

        assert Path(path).read_bytes() == b"\x00\x01\x02\x03"

    def test_download_without_result(self, tmp_path, done_result):
        session = EditorSession(FakeClient(done_result))
        assert session.download(str(tmp_path)) is None
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_download_rejects_bad_payload(self, tmp_path, done_result, cat_jpg):
        session = ready_session(FakeClient(done_result), cat_jpg)
        await session.generate()

        with pytest.raises(ValueError):
            session.download(str(tmp_path))
        assert session.phase is Phase.DONE
