"""Unit tests for the session controller."""

import base64
from io import BytesIO
from unittest.mock import AsyncMock, Mock, patch

import pytest
import pytest_asyncio
from PIL import Image

from scene_generator.agents.session_controller import InputValidationError, SessionController
from scene_generator.backends.interface import AllModelsFailedError, AuthTokenError
from scene_generator.config import Settings
from scene_generator.models import (
    CategorySelection,
    GenerationMode,
    ParentMessage,
    SessionPhase,
    VariationCategory,
    VideoTask,
    VideoTaskStatus,
)
from scene_generator.tools.generation_client import GenerationClient, PreviewResult
from scene_generator.tools.image_transfer import ImageDecodeError, data_url_to_image
from scene_generator.tools.prompts import preview_metadata
from scene_generator.tools.video_task_client import VideoTaskClient, VideoTaskTimeoutError


def _png_bytes(size=(320, 180), color='red'):
    buffer = BytesIO()
    Image.new('RGB', size, color=color).save(buffer, format='PNG')
    return buffer.getvalue()


def _grid_data_url():
    """300x300 grid whose cells are coloured by index."""
    img = Image.new('RGB', (300, 300))
    for index in range(9):
        row, col = divmod(index, 3)
        img.paste(Image.new('RGB', (100, 100), (index * 25, 0, 0)), (col * 100, row * 100))
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


FINAL_URL = "data:image/png;base64," + base64.b64encode(_png_bytes((160, 90), 'white')).decode()
MODIFIED_URL = "data:image/png;base64," + base64.b64encode(_png_bytes((160, 90), 'black')).decode()


@pytest.fixture
def config(tmp_path):
    return Settings(_env_file=None, storage_path=str(tmp_path))


@pytest.fixture
def generation_client():
    client = AsyncMock(spec=GenerationClient)
    client.generate_preview_grid.return_value = PreviewResult(
        image_ref=_grid_data_url(),
        metadata=preview_metadata(GenerationMode.LINEAR),
    )
    client.generate_final.return_value = FINAL_URL
    client.modify_image.return_value = MODIFIED_URL
    return client


@pytest.fixture
def video_client():
    client = AsyncMock(spec=VideoTaskClient)
    client.generate_video.return_value = VideoTask(
        task_id="t1", status=VideoTaskStatus.SUCCESS, video_url="https://v/out.mp4", attempts=3
    )
    return client


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def controller(generation_client, video_client, config, notifier):
    return SessionController(
        generation_client,
        video_client=video_client,
        config=config,
        parent_notifier=notifier,
    )


@pytest.fixture
def uploaded(controller):
    controller.upload_image(_png_bytes(), "ref.png")
    return controller


@pytest_asyncio.fixture
async def previewed(uploaded):
    uploaded.toggle_category(VariationCategory.SHOT)
    await uploaded.generate_preview()
    return uploaded


class TestUpload:
    """Test the upload transition."""

    def test_upload_sets_reference(self, controller):
        state = controller.upload_image(_png_bytes((1920, 1080)), "wide.png")

        assert state.reference_image.startswith("data:image/png;base64,")
        assert state.reference_filename == "wide.png"
        assert state.grid_aspect_ratio == "16:9"
        assert state.phase == SessionPhase.CONFIGURE
        assert state.error is None

    def test_upload_rejects_large_file(self, controller):
        before = controller.state
        data = b'\x89PNG' + b'\x00' * (10 * 1024 * 1024)

        with pytest.raises(InputValidationError, match=r"Image too large \(>10MB\)"):
            controller.upload_image(data, "big.png")

        assert controller.state.reference_image is None
        assert controller.state.error == "Image too large (>10MB)"
        assert controller.state.evolve(error=None) == before

    def test_upload_rejects_undecodable(self, controller):
        with pytest.raises(ImageDecodeError):
            controller.upload_image(b"not an image", "x.png")
        assert controller.state.error

    @pytest.mark.asyncio
    async def test_upload_clears_downstream(self, controller):
        controller.upload_image(_png_bytes(), "a.png")
        controller.toggle_smart_layout()
        await controller.generate_preview()
        controller.select_cell(4)

        state = controller.upload_image(_png_bytes((400, 400)), "b.png")

        assert state.preview_grid is None
        assert state.selected_cell_index is None
        assert state.final_image is None
        assert state.grid_metadata == []
        assert state.grid_aspect_ratio == "1:1"
        # Configuration survives a new upload
        assert state.smart_layout_enabled

    @pytest.mark.asyncio
    async def test_upload_image_file(self, controller, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(_png_bytes((300, 400)))

        state = await controller.upload_image_file(str(path))

        assert state.reference_filename == "photo.png"
        assert state.grid_aspect_ratio == "3:4"


class TestExternalImage:
    @pytest.mark.asyncio
    @patch('scene_generator.agents.session_controller.fetch_image_bytes', new_callable=AsyncMock)
    async def test_load_with_33grid_mode(self, mock_fetch, controller):
        mock_fetch.return_value = _png_bytes()

        state = await controller.load_external_image("https://cdn.example.com/scene.png", "33grid")

        assert state.external_mode
        assert state.external_source_mode == "33grid"
        assert state.smart_layout_enabled
        assert state.logic_mode == GenerationMode.CINEMATIC
        assert state.reference_filename == "scene.png"

    @pytest.mark.asyncio
    @patch('scene_generator.agents.session_controller.fetch_image_bytes', new_callable=AsyncMock)
    async def test_load_without_mode(self, mock_fetch, controller):
        mock_fetch.return_value = _png_bytes()

        state = await controller.load_external_image("https://cdn.example.com/scene.png")

        assert state.external_mode
        assert state.external_source_mode is None
        assert not state.smart_layout_enabled

    @pytest.mark.asyncio
    @patch('scene_generator.agents.session_controller.fetch_image_bytes', new_callable=AsyncMock)
    async def test_fetch_failure_recorded(self, mock_fetch, controller):
        mock_fetch.side_effect = OSError("unreachable")

        with pytest.raises(OSError):
            await controller.load_external_image("https://cdn.example.com/scene.png")
        assert controller.state.error == "unreachable"


class TestConfiguration:
    """Test mode toggling and the clearing invariant."""

    def test_toggle_category_derives_mode(self, controller):
        controller.toggle_category(VariationCategory.ANGLE)
        assert controller.state.logic_mode == GenerationMode.LINEAR

        controller.toggle_category(VariationCategory.SHOT)
        assert controller.state.logic_mode == GenerationMode.MATRIX

        controller.toggle_category(VariationCategory.EXPRESSION)
        assert controller.state.logic_mode == GenerationMode.DYNAMIC

        controller.toggle_category(VariationCategory.ANGLE)
        assert controller.state.logic_mode == GenerationMode.MATRIX

    def test_smart_layout_clears_categories_and_story(self, controller):
        controller.toggle_category(VariationCategory.ANGLE)
        controller.toggle_story_mode()
        state = controller.toggle_smart_layout()

        assert state.smart_layout_enabled
        assert not state.story_mode_enabled
        assert state.selected_categories == CategorySelection()
        assert state.logic_mode == GenerationMode.CINEMATIC

    def test_story_mode_clears_smart_layout(self, controller):
        controller.toggle_smart_layout()
        state = controller.toggle_story_mode()

        assert state.story_mode_enabled
        assert not state.smart_layout_enabled
        assert state.logic_mode == GenerationMode.STORY

    def test_categories_ignored_during_special_mode(self, controller):
        controller.toggle_story_mode()
        state = controller.toggle_category(VariationCategory.ANGLE)

        assert not state.selected_categories.any_selected
        assert state.logic_mode == GenerationMode.STORY

    def test_turning_special_mode_off_rederives(self, controller):
        controller.toggle_smart_layout()
        state = controller.toggle_smart_layout()

        assert not state.smart_layout_enabled
        assert state.logic_mode == GenerationMode.LINEAR

    def test_select_genre(self, controller):
        assert controller.select_genre("romantic").selected_genre == "romantic"
        with pytest.raises(InputValidationError):
            controller.select_genre("western")
        assert controller.state.selected_genre == "romantic"

    def test_output_settings(self, controller):
        controller.set_output_resolution("4K")
        controller.set_output_aspect_ratio("9:16")

        assert controller.state.output_resolution.value == "4K"
        assert controller.state.output_aspect_ratio.value == "9:16"
        with pytest.raises(InputValidationError):
            controller.set_output_resolution("8K")
        with pytest.raises(InputValidationError):
            controller.set_output_aspect_ratio("2:1")


class TestPreview:
    """Test preview generation."""

    @pytest.mark.asyncio
    async def test_requires_reference(self, controller, generation_client):
        controller.toggle_category(VariationCategory.ANGLE)
        with pytest.raises(InputValidationError):
            await controller.generate_preview()
        generation_client.generate_preview_grid.assert_not_awaited()
        assert controller.stats.preview_count == 0

    @pytest.mark.asyncio
    async def test_zero_categories_rejected(self, uploaded, generation_client):
        with pytest.raises(InputValidationError):
            await uploaded.generate_preview()
        generation_client.generate_preview_grid.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generate_preview(self, uploaded, generation_client):
        uploaded.set_token("tok")
        uploaded.toggle_smart_layout()
        uploaded.select_genre("noir")
        uploaded.set_context("rainy night")

        state = await uploaded.generate_preview()

        assert state.preview_grid.startswith("data:image/png")
        assert state.preview_grid_size == (300, 300)
        assert len(state.grid_metadata) == 9
        assert state.selected_cell_index is None
        assert not state.is_generating_preview
        assert uploaded.stats.preview_count == 1

        kwargs = generation_client.generate_preview_grid.await_args.kwargs
        assert kwargs["mode"] == GenerationMode.CINEMATIC
        assert kwargs["genre_id"] == "noir"
        assert kwargs["aspect_label"] == "16:9"
        assert kwargs["context"] == "rainy night"
        assert kwargs["token"] == "tok"

    @pytest.mark.asyncio
    async def test_failure_records_error_and_counts(self, uploaded, generation_client):
        uploaded.toggle_category(VariationCategory.ANGLE)
        generation_client.generate_preview_grid.side_effect = AllModelsFailedError([("m", RuntimeError("x"))])

        with pytest.raises(AllModelsFailedError):
            await uploaded.generate_preview()

        assert uploaded.state.error
        assert not uploaded.state.is_generating_preview
        assert uploaded.state.preview_grid is None
        assert uploaded.stats.preview_count == 1

    @pytest.mark.asyncio
    async def test_select_cell(self, previewed):
        assert previewed.select_cell(8).selected_cell_index == 8
        assert previewed.select_cell_at(150, 20).selected_cell_index == 1
        assert previewed.select_cell_at(10, 290, 300, 300).selected_cell_index == 6
        with pytest.raises(InputValidationError):
            previewed.select_cell(9)

    def test_select_cell_requires_preview(self, uploaded):
        with pytest.raises(InputValidationError):
            uploaded.select_cell(0)


class TestFinal:
    """Test final generation and modification."""

    @pytest.mark.asyncio
    async def test_requires_selected_cell(self, previewed, generation_client):
        with pytest.raises(InputValidationError):
            await previewed.generate_final()
        generation_client.generate_final.assert_not_awaited()
        assert previewed.stats.final_count == 0

    @pytest.mark.asyncio
    async def test_generate_final(self, previewed, generation_client, notifier):
        previewed.select_cell(4)
        previewed.set_output_resolution("4K")

        state = await previewed.generate_final()

        assert state.final_image == FINAL_URL
        assert state.phase == SessionPhase.FINAL_READY
        assert not state.is_generating_final

        kwargs = generation_client.generate_final.await_args.kwargs
        assert kwargs["original_reference"] == state.reference_image
        assert kwargs["resolution"] == "4K"
        assert kwargs["aspect_ratio"] == "16:9"
        patch_image = data_url_to_image(kwargs["cropped_patch"])
        assert patch_image.size == (100, 100)
        red, _, _ = patch_image.getpixel((50, 50))
        assert abs(red - 4 * 25) <= 3

        message = notifier.call_args.args[0]
        assert message.type == ParentMessage.FINAL_COMPLETE
        assert message.to_payload()["stats"] == {"previewCount": 1, "finalCount": 1}
        assert previewed.last_parent_message is message

    @pytest.mark.asyncio
    @patch('scene_generator.agents.session_controller.fetch_image_bytes', new_callable=AsyncMock)
    async def test_33grid_final_reports_grid_complete(self, mock_fetch, controller, notifier):
        mock_fetch.return_value = _png_bytes()
        await controller.load_external_image("https://cdn.example.com/scene.png", "33grid")
        mock_fetch.return_value = base64.b64decode(_grid_data_url().split(",", 1)[1])
        await controller.generate_preview()
        controller.select_cell(8)

        await controller.generate_final()

        message = notifier.call_args.args[0]
        assert message.type == ParentMessage.GRID_COMPLETE
        assert message.to_payload()["type"] == "33grid-complete"
        assert message.to_payload()["imageUrl"] == FINAL_URL

        state = controller.reset()
        assert state.external_source_mode == "33grid"

    @pytest.mark.asyncio
    async def test_final_failure(self, previewed, generation_client, notifier):
        previewed.select_cell(0)
        generation_client.generate_final.side_effect = AuthTokenError("token expired")

        with pytest.raises(AuthTokenError):
            await previewed.generate_final()

        assert previewed.state.final_image is None
        assert previewed.state.error == "token expired"
        assert not previewed.state.is_generating_final
        assert previewed.stats.final_count == 1
        notifier.assert_not_called()

    @pytest.mark.asyncio
    async def test_modify_and_revert(self, previewed, generation_client):
        previewed.select_cell(2)
        await previewed.generate_final()

        state = await previewed.modify_image("add rain")
        assert state.modified_image == MODIFIED_URL
        assert state.final_image == FINAL_URL
        assert state.current_image == MODIFIED_URL
        assert generation_client.modify_image.await_args.kwargs["source_image"] == FINAL_URL

        await previewed.modify_image("more rain")
        assert generation_client.modify_image.await_args.kwargs["source_image"] == MODIFIED_URL

        state = previewed.revert_modification()
        assert state.modified_image is None
        assert state.current_image == FINAL_URL

    @pytest.mark.asyncio
    async def test_modify_requires_image_and_instruction(self, previewed):
        with pytest.raises(InputValidationError):
            await previewed.modify_image("add rain")

        previewed.select_cell(0)
        await previewed.generate_final()
        with pytest.raises(InputValidationError):
            await previewed.modify_image("   ")

    @pytest.mark.asyncio
    async def test_back_and_reset(self, previewed):
        previewed.select_cell(0)
        await previewed.generate_final()

        state = previewed.back_to_selection()
        assert state.final_image is None
        assert state.preview_grid is not None
        assert state.phase == SessionPhase.PREVIEW_READY

        state = previewed.reset()
        assert state.phase == SessionPhase.UPLOAD
        assert previewed.stats.preview_count == 1
        assert previewed.stats.final_count == 1


class TestSaveAndExport:
    @pytest.mark.asyncio
    async def test_save_and_update_grid(self, previewed, notifier):
        previewed.select_cell(4)
        await previewed.generate_final()
        await previewed.modify_image("night")

        state = await previewed.save_and_update_grid()

        grid = data_url_to_image(state.preview_grid)
        assert grid.size == (300, 300)
        # Cell 4 now holds the black modified image, cell 0 is untouched
        assert max(grid.getpixel((150, 150))) <= 5
        assert grid.getpixel((50, 50))[0] <= 5

        message = notifier.call_args.args[0]
        assert message.type == ParentMessage.SCENE_GENERATED
        assert message.image_url == MODIFIED_URL

    @pytest.mark.asyncio
    async def test_save_requires_final(self, previewed):
        with pytest.raises(InputValidationError):
            await previewed.save_and_update_grid()

    @pytest.mark.asyncio
    async def test_export_grid(self, previewed, tmp_path):
        path = await previewed.export_grid()

        assert path.startswith(str(tmp_path.resolve()))
        assert path.endswith(".png")
        with Image.open(path) as img:
            assert img.size == (300, 300)

    @pytest.mark.asyncio
    async def test_export_requires_image(self, uploaded):
        with pytest.raises(InputValidationError):
            await uploaded.export_current_image()


class TestVideo:
    @pytest.mark.asyncio
    async def test_generate_video_uses_current_image(self, previewed, video_client):
        previewed.select_cell(1)
        await previewed.generate_final()

        state = await previewed.generate_video(prompt="slow zoom", duration=4)

        assert state.video_url == "https://v/out.mp4"
        assert not state.is_generating_video
        source, options = video_client.generate_video.await_args.args
        assert source == FINAL_URL
        assert options.prompt == "slow zoom"
        assert options.duration == 4

    @pytest.mark.asyncio
    async def test_generate_video_failure(self, uploaded, video_client):
        video_client.generate_video.side_effect = VideoTaskTimeoutError("timed out")

        with pytest.raises(VideoTaskTimeoutError):
            await uploaded.generate_video(source_image="https://cdn.example.com/a.png")

        assert uploaded.state.error == "timed out"
        assert not uploaded.state.is_generating_video

    @pytest.mark.asyncio
    async def test_generate_video_without_client(self, generation_client, config):
        controller = SessionController(generation_client, config=config)
        with pytest.raises(InputValidationError):
            await controller.generate_video(source_image="https://cdn.example.com/a.png")
