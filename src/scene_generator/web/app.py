"""Gradio web interface for Scene Generator."""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import gradio as gr

from ..agents.session_controller import SessionController
from ..backends import get_generation_backend
from ..config import settings
from ..models.aspect_ratio import AspectRatio, Resolution
from ..models.generation import DEFAULT_GENRE_ID, GENRE_PRESETS, VariationCategory
from ..models.session_state import ParentMessage, SessionState, UsageStats
from ..tools.generation_client import GenerationClient
from ..tools.image_transfer import data_url_to_image, is_data_url
from ..tools.video_task_client import VideoTaskClient


logger = logging.getLogger(__name__)

# Posts the ParentMessage to the opener window and the embedding frame
POST_MESSAGE_JS = """
(message) => {
    if (!message || !message.type) { return []; }
    try {
        if (window.opener) { window.opener.postMessage(message, '*'); }
    } catch (e) { console.warn('opener postMessage failed', e); }
    try {
        if (window.parent && window.parent !== window) { window.parent.postMessage(message, '*'); }
    } catch (e) { console.warn('parent postMessage failed', e); }
    return [];
}
"""

VIDEO_RESOLUTIONS = ["360p", "720p", "1080p"]

# Used when a handler is called without a Gradio request (scripts, tests)
DEFAULT_SESSION = "default"


def _display(ref: Optional[str]) -> Any:
    """Convert an image reference into something gr.Image can render."""
    if not ref:
        return None
    if is_data_url(ref):
        return data_url_to_image(ref)
    return ref


def _session_key(request: Optional[gr.Request]) -> str:
    return getattr(request, "session_hash", None) or DEFAULT_SESSION


def _mode_text(state: SessionState) -> str:
    mode = state.logic_mode
    if not state.has_generation_target:
        return "**Mode:** select a category or a special mode"
    return f"**Mode: {mode.value}** | {mode.description}"


def _selection_text(state: SessionState) -> str:
    if state.selected_cell_index is None:
        return "Click a cell of the preview grid to select it."
    meta = state.selected_cell_metadata
    details = f" ({meta.summary()})" if meta and meta.summary() else ""
    return f"Selected cell {state.selected_cell_index + 1} of 9{details}"


def _stats_text(stats: UsageStats) -> str:
    return f"Session: {stats.preview_count} preview(s), {stats.final_count} final(s)"


def build_controller() -> SessionController:
    """Create a SessionController wired from the global settings."""
    generation_client = GenerationClient(get_generation_backend(settings))
    video_client = VideoTaskClient.from_settings(settings) if settings.vidu_api_key else None
    return SessionController(generation_client, video_client=video_client, config=settings)


class SceneGeneratorApp:
    """Gradio application for Scene Generator.

    Every browser session gets its own SessionController, keyed by the
    Gradio session hash. A page load starts a fresh session and closing
    the page discards it.
    """

    def __init__(self, controller_factory: Optional[Callable[[], SessionController]] = None):
        """Initialize the application.

        Args:
            controller_factory: Builds one controller per session; wired from settings when omitted
        """
        self.controller_factory = controller_factory or build_controller
        self._sessions: Dict[str, SessionController] = {}
        self._last_posted: Dict[str, ParentMessage] = {}
        logger.info("Initialized Scene Generator app")

    # ------------------------------------------------------------------
    # Sessions

    def session(self, request: Optional[gr.Request] = None) -> SessionController:
        """Return the controller for a request's session, creating it on first use."""
        key = _session_key(request)
        controller = self._sessions.get(key)
        if controller is None:
            controller = self.start_session(request)
        return controller

    def start_session(self, request: Optional[gr.Request] = None) -> SessionController:
        """Replace the session's controller with a fresh one."""
        key = _session_key(request)
        controller = self.controller_factory()
        self._sessions[key] = controller
        self._last_posted.pop(key, None)
        logger.debug(f"Started session {key}")
        return controller

    def end_session(self, request: gr.Request = None) -> None:
        key = _session_key(request)
        self._sessions.pop(key, None)
        self._last_posted.pop(key, None)
        logger.debug(f"Ended session {key}")

    # ------------------------------------------------------------------
    # Rendering

    def _parent_payload(self, key: str, controller: SessionController) -> Any:
        message = controller.last_parent_message
        if message is None or message is self._last_posted.get(key):
            return gr.update()
        self._last_posted[key] = message
        return message.to_payload()

    def _render(self, request: Optional[gr.Request], log: str = "") -> Tuple:
        key = _session_key(request)
        controller = self.session(request)
        state = controller.state
        categories = state.selected_categories
        return (
            _display(state.reference_image),
            categories.angle,
            categories.shot,
            categories.expression,
            state.smart_layout_enabled,
            state.story_mode_enabled,
            _mode_text(state),
            f"Detected grid ratio: **{state.grid_aspect_ratio}**",
            _display(state.preview_grid),
            _selection_text(state),
            _display(state.current_image),
            _stats_text(controller.stats),
            log,
            self._parent_payload(key, controller),
        )

    def create_interface(self) -> gr.Blocks:
        """Create the Gradio interface."""
        genre_choices = [(f"{g.name_en} ({g.name_ko})", g.id) for g in GENRE_PRESETS]
        initial_state = SessionState()

        with gr.Blocks(title="Scene Generator", theme=gr.themes.Soft()) as app:
            gr.Markdown(
                """
                # 🎬 Scene Generator

                Turn one reference image into a 3x3 grid of cinematic variations, then upscale your favourite cell.
                """
            )

            with gr.Tabs():
                # Tab 1: Scene generation workflow
                with gr.TabItem("Generate Scene"):
                    with gr.Row():
                        with gr.Column(scale=1):
                            reference_image = gr.Image(
                                label="1. Reference Image",
                                type="filepath",
                                sources=["upload"],
                                elem_id="reference_upload"
                            )
                            ratio_info = gr.Markdown("Detected grid ratio: **1:1**")

                            gr.Markdown("### 2. Variation Logic")
                            with gr.Row():
                                angle_cb = gr.Checkbox(label="Camera Angle", value=False)
                                shot_cb = gr.Checkbox(label="Shot Size", value=False)
                                expression_cb = gr.Checkbox(label="Expression", value=False)
                            smart_cb = gr.Checkbox(label="✨ Smart Layout (Cinematic 9-shot)", value=False)
                            story_cb = gr.Checkbox(label="🎞️ Story Mode (Storyboard)", value=False)
                            genre = gr.Dropdown(
                                choices=genre_choices,
                                value=DEFAULT_GENRE_ID,
                                label="Genre Preset (Smart Layout)"
                            )
                            mode_info = gr.Markdown(_mode_text(initial_state))

                            context = gr.Textbox(
                                label="Context Prompt / Story Line",
                                placeholder="E.g., Cyberpunk detective in rainy neon-lit alley...",
                                lines=3
                            )
                            preview_btn = gr.Button(
                                "⚡ Generate 3x3 Preview",
                                variant="primary",
                                size="lg"
                            )

                        with gr.Column(scale=1):
                            preview_image = gr.Image(
                                label="3. Preview Grid (click a cell)",
                                interactive=False,
                                elem_id="preview_grid"
                            )
                            selection_info = gr.Markdown(_selection_text(initial_state))

                            with gr.Row():
                                resolution = gr.Radio(
                                    choices=[r.value for r in Resolution],
                                    value=Resolution.TWO_K.value,
                                    label="4. Resolution"
                                )
                                aspect = gr.Radio(
                                    choices=[a.value for a in AspectRatio],
                                    value=AspectRatio.WIDESCREEN.value,
                                    label="Aspect Ratio"
                                )
                            final_btn = gr.Button("🎯 Generate Final Image", variant="primary")

                    with gr.Row():
                        with gr.Column(scale=1):
                            final_image = gr.Image(
                                label="5. Final Image",
                                interactive=False,
                                elem_id="final_image"
                            )
                        with gr.Column(scale=1):
                            modification = gr.Textbox(
                                label="Modify Image",
                                placeholder="E.g., Make it night time with neon reflections",
                                lines=2
                            )
                            with gr.Row():
                                modify_btn = gr.Button("✏️ Apply Modification")
                                revert_btn = gr.Button("↩️ Revert")
                            with gr.Row():
                                save_btn = gr.Button("📤 Save & Update Grid", variant="primary")
                                back_btn = gr.Button("⬅️ Back to Selection")
                                reset_btn = gr.Button("🔄 Start Over")
                            with gr.Row():
                                export_grid_btn = gr.Button("💾 Download Grid")
                                export_image_btn = gr.Button("💾 Download Image")
                            download_file = gr.File(label="Download", interactive=False)

                    stats_info = gr.Markdown(_stats_text(UsageStats()))
                    log = gr.Textbox(label="Log", lines=3, interactive=False)
                    parent_message = gr.JSON(visible=False)

                # Tab 2: Image to video
                with gr.TabItem("Image to Video"):
                    with gr.Row():
                        with gr.Column():
                            video_source = gr.Image(
                                label="Source Image (defaults to the current image)",
                                type="filepath"
                            )
                            video_prompt = gr.Textbox(
                                label="Motion Prompt",
                                placeholder=settings.video_prompt,
                                lines=2
                            )
                            with gr.Row():
                                video_duration = gr.Slider(
                                    minimum=1,
                                    maximum=16,
                                    value=settings.video_duration,
                                    step=1,
                                    label="Duration (seconds)"
                                )
                                video_resolution = gr.Dropdown(
                                    choices=VIDEO_RESOLUTIONS,
                                    value=settings.video_resolution,
                                    label="Resolution"
                                )
                            video_btn = gr.Button("🎥 Generate Video", variant="primary")
                        with gr.Column():
                            output_video = gr.Video(label="Generated Video")
                            video_url = gr.Textbox(label="Video URL", interactive=False)
                            video_log = gr.Textbox(label="Video Log", lines=3, interactive=False)

            view = [
                reference_image,
                angle_cb,
                shot_cb,
                expression_cb,
                smart_cb,
                story_cb,
                mode_info,
                ratio_info,
                preview_image,
                selection_info,
                final_image,
                stats_info,
                log,
                parent_message,
            ]

            # Event handlers
            reference_image.upload(fn=self.upload_image, inputs=[reference_image], outputs=view)
            angle_cb.input(fn=self.set_angle, inputs=[angle_cb], outputs=view)
            shot_cb.input(fn=self.set_shot, inputs=[shot_cb], outputs=view)
            expression_cb.input(fn=self.set_expression, inputs=[expression_cb], outputs=view)
            smart_cb.input(fn=self.set_smart_layout, inputs=[smart_cb], outputs=view)
            story_cb.input(fn=self.set_story_mode, inputs=[story_cb], outputs=view)
            genre.input(fn=self.select_genre, inputs=[genre], outputs=view)

            preview_btn.click(fn=self.generate_preview, inputs=[context], outputs=view)
            preview_image.select(fn=self.select_cell, inputs=None, outputs=view)
            final_btn.click(fn=self.generate_final, inputs=[resolution, aspect], outputs=view)
            modify_btn.click(fn=self.modify_image, inputs=[modification], outputs=view)
            revert_btn.click(fn=self.revert_modification, inputs=None, outputs=view)
            save_btn.click(fn=self.save_and_update_grid, inputs=None, outputs=view)
            back_btn.click(fn=self.back_to_selection, inputs=None, outputs=view)
            reset_btn.click(fn=self.reset, inputs=None, outputs=view)
            export_grid_btn.click(fn=self.export_grid, inputs=None, outputs=[download_file, log])
            export_image_btn.click(fn=self.export_current_image, inputs=None, outputs=[download_file, log])

            parent_message.change(fn=None, inputs=[parent_message], outputs=None, js=POST_MESSAGE_JS)

            video_btn.click(
                fn=self.generate_video,
                inputs=[video_source, video_prompt, video_duration, video_resolution],
                outputs=[output_video, video_url, video_log]
            )

            app.load(fn=self.on_load, inputs=None, outputs=view)
            app.unload(fn=self.end_session)

        return app

    # ------------------------------------------------------------------
    # Page load and embedding integration

    async def on_load_async(
        self,
        controller: SessionController,
        token: Optional[str],
        image_url: Optional[str],
        mode: Optional[str],
    ) -> str:
        """Apply query parameters passed by an embedding page."""
        controller.set_token(token)
        if not image_url:
            return ""
        try:
            await controller.load_external_image(image_url, mode)
            return "✅ Image loaded from parent page"
        except Exception as e:
            logger.error(f"External image load failed: {e}")
            return f"❌ Error: {e}"

    def on_load(self, request: gr.Request = None) -> Tuple:
        params = dict(request.query_params) if request else {}
        controller = self.start_session(request)
        log = asyncio.run(self.on_load_async(
            controller,
            params.get("token"),
            params.get("imageUrl"),
            params.get("mode"),
        ))
        return self._render(request, log)

    # ------------------------------------------------------------------
    # Step 1 and 2: Upload and configuration

    async def upload_image_async(self, controller: SessionController, image_path: str) -> str:
        try:
            state = await controller.upload_image_file(image_path)
            return f"✅ Reference image loaded ({state.grid_aspect_ratio})"
        except Exception as e:
            logger.error(f"Upload failed: {e}")
            return f"❌ Error: {e}"

    def upload_image(self, image_path: Optional[str], request: gr.Request = None) -> Tuple:
        if not image_path:
            return self._render(request, "❌ Please upload an image")
        log = asyncio.run(self.upload_image_async(self.session(request), image_path))
        return self._render(request, log)

    def _set_category(self, category: VariationCategory, value: bool, request: Optional[gr.Request]) -> Tuple:
        controller = self.session(request)
        state = controller.state
        if state.smart_layout_enabled or state.story_mode_enabled:
            return self._render(request, "Categories are disabled while a special mode is active")
        if getattr(state.selected_categories, category.value) != bool(value):
            controller.toggle_category(category)
        return self._render(request)

    def set_angle(self, value: bool, request: gr.Request = None) -> Tuple:
        return self._set_category(VariationCategory.ANGLE, value, request)

    def set_shot(self, value: bool, request: gr.Request = None) -> Tuple:
        return self._set_category(VariationCategory.SHOT, value, request)

    def set_expression(self, value: bool, request: gr.Request = None) -> Tuple:
        return self._set_category(VariationCategory.EXPRESSION, value, request)

    def set_smart_layout(self, value: bool, request: gr.Request = None) -> Tuple:
        controller = self.session(request)
        if controller.state.smart_layout_enabled != bool(value):
            controller.toggle_smart_layout()
        return self._render(request)

    def set_story_mode(self, value: bool, request: gr.Request = None) -> Tuple:
        controller = self.session(request)
        if controller.state.story_mode_enabled != bool(value):
            controller.toggle_story_mode()
        return self._render(request)

    def select_genre(self, genre_id: str, request: gr.Request = None) -> Tuple:
        try:
            self.session(request).select_genre(genre_id)
            return self._render(request)
        except Exception as e:
            return self._render(request, f"❌ Error: {e}")

    # ------------------------------------------------------------------
    # Step 3: Preview

    async def generate_preview_async(self, controller: SessionController) -> str:
        try:
            state = await controller.generate_preview()
            return f"✅ Preview grid generated ({state.logic_mode.value}). Click a cell to select it."
        except Exception as e:
            logger.error(f"Preview generation failed: {e}")
            return f"❌ Error: {e}"

    def generate_preview(self, context: Optional[str], request: gr.Request = None) -> Tuple:
        controller = self.session(request)
        controller.set_context(context)
        return self._render(request, asyncio.run(self.generate_preview_async(controller)))

    def select_cell(self, evt: gr.SelectData, request: gr.Request = None) -> Tuple:
        try:
            x, y = evt.index
            state = self.session(request).select_cell_at(float(x), float(y))
            return self._render(request, f"Selected cell {state.selected_cell_index + 1}")
        except Exception as e:
            return self._render(request, f"❌ Error: {e}")

    # ------------------------------------------------------------------
    # Step 4 and 5: Final image and modification

    async def generate_final_async(self, controller: SessionController) -> str:
        try:
            state = await controller.generate_final()
            width, height = state.output_resolution.dimensions(state.output_aspect_ratio)
            return f"✅ Final image generated ({state.output_resolution.value}, {width}x{height})"
        except Exception as e:
            logger.error(f"Final generation failed: {e}")
            return f"❌ Error: {e}"

    def generate_final(self, resolution: str, aspect_ratio: str, request: gr.Request = None) -> Tuple:
        controller = self.session(request)
        try:
            controller.set_output_resolution(resolution)
            controller.set_output_aspect_ratio(aspect_ratio)
        except Exception as e:
            return self._render(request, f"❌ Error: {e}")
        return self._render(request, asyncio.run(self.generate_final_async(controller)))

    async def modify_image_async(self, controller: SessionController, instruction: str) -> str:
        try:
            await controller.modify_image(instruction)
            return "✅ Modification applied"
        except Exception as e:
            logger.error(f"Modification failed: {e}")
            return f"❌ Error: {e}"

    def modify_image(self, instruction: Optional[str], request: gr.Request = None) -> Tuple:
        if not instruction or not instruction.strip():
            return self._render(request, "❌ Please describe the modification")
        log = asyncio.run(self.modify_image_async(self.session(request), instruction))
        return self._render(request, log)

    def revert_modification(self, request: gr.Request = None) -> Tuple:
        self.session(request).revert_modification()
        return self._render(request, "Reverted to the final image")

    async def save_and_update_grid_async(self, controller: SessionController) -> str:
        try:
            await controller.save_and_update_grid()
            return "✅ Saved to project and grid updated"
        except Exception as e:
            logger.error(f"Save failed: {e}")
            return f"❌ Error: {e}"

    def save_and_update_grid(self, request: gr.Request = None) -> Tuple:
        log = asyncio.run(self.save_and_update_grid_async(self.session(request)))
        return self._render(request, log)

    def back_to_selection(self, request: gr.Request = None) -> Tuple:
        self.session(request).back_to_selection()
        return self._render(request)

    def reset(self, request: gr.Request = None) -> Tuple:
        self.session(request).reset()
        return self._render(request, "Started over")

    # ------------------------------------------------------------------
    # Export

    async def _export_async(self, controller: SessionController, target: str) -> Tuple[Optional[str], str]:
        try:
            if target == "grid":
                path = await controller.export_grid()
            else:
                path = await controller.export_current_image()
            return path, "✅ Ready to download"
        except Exception as e:
            logger.error(f"Export failed: {e}")
            return None, f"❌ Error: {e}"

    def export_grid(self, request: gr.Request = None) -> Tuple[Optional[str], str]:
        return asyncio.run(self._export_async(self.session(request), "grid"))

    def export_current_image(self, request: gr.Request = None) -> Tuple[Optional[str], str]:
        return asyncio.run(self._export_async(self.session(request), "image"))

    # ------------------------------------------------------------------
    # Image to video

    async def generate_video_async(
        self,
        controller: SessionController,
        source_image: Optional[str],
        prompt: Optional[str],
        duration: Optional[int],
        resolution: Optional[str],
    ) -> Tuple[Optional[str], str]:
        try:
            state = await controller.generate_video(
                prompt=prompt,
                source_image=source_image,
                duration=int(duration) if duration else None,
                resolution=resolution,
            )
            return state.video_url, "✅ Video generated"
        except Exception as e:
            logger.error(f"Video generation failed: {e}")
            return None, f"❌ Error: {e}"

    def generate_video(
        self,
        source_image: Optional[str],
        prompt: Optional[str],
        duration: Optional[int],
        resolution: Optional[str],
        request: gr.Request = None,
    ) -> Tuple[Optional[str], str, str]:
        """Generate video (synchronous wrapper)."""
        url, log = asyncio.run(self.generate_video_async(
            self.session(request), source_image, prompt, duration, resolution
        ))
        return url, url or "", log


def launch_app(share: bool = False, port: int = 7860):
    """Launch the Gradio application.

    Args:
        share: If True, create a public share link
        port: Port to run the server on
    """
    app_instance = SceneGeneratorApp()
    interface = app_instance.create_interface()

    interface.launch(
        share=share,
        server_port=port,
        server_name="0.0.0.0",
        show_error=True
    )
