"""
LinguaComic — Main Orchestrator.

LearningBundlePipeline ties all stages together:
  Source → Analysis → (Panel images ∥ Vocabulary images) → Complete

State machine:
  idle → analyzing → synthesizing_images → complete
  analyzing / synthesizing_images → error
  complete / error → idle (reset)

Analysis failure is fatal to the run. Image failures are absorbed per item:
a panel or word that could not be illustrated simply stays without an image.
"""

import asyncio
import logging
from typing import Callable, Optional

from linguacomic.analyzer import ContentAnalyzer
from linguacomic.config import AppConfig, load_config
from linguacomic.errors import InvalidTransition
from linguacomic.fan_out import ImageFanOut
from linguacomic.image_generator import ImageGenerator
from linguacomic.models import EDITABLE_PANEL_FIELDS, Document, PipelineState
from linguacomic.session import Session

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "Something went wrong. Please check your API key or try simpler content."

TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.ANALYZING},
    PipelineState.ANALYZING: {PipelineState.SYNTHESIZING_IMAGES, PipelineState.ERROR},
    PipelineState.SYNTHESIZING_IMAGES: {PipelineState.COMPLETE, PipelineState.ERROR},
    PipelineState.COMPLETE: {PipelineState.IDLE},
    PipelineState.ERROR: {PipelineState.IDLE},
}

# States from which a new run may start
STARTABLE_STATES = (PipelineState.IDLE, PipelineState.ERROR)


def has_input(text: Optional[str], image_bytes: Optional[bytes]) -> bool:
    """True when there is something to analyze."""
    return bool(text and text.strip()) or bool(image_bytes)


class LearningBundlePipeline:
    """
    End-to-end learning bundle generator for one session.

    Usage:
        pipeline = LearningBundlePipeline()
        document = await pipeline.run(text="The water cycle ...")
        # document.comic_panels / vocabulary carry images where synthesis worked
    """

    def __init__(
        self,
        analyzer=None,
        image_generator=None,
        config: Optional[AppConfig] = None,
        session: Optional[Session] = None,
        on_progress: Optional[Callable[[str, dict], None]] = None,
    ):
        self.config = config or load_config()
        self.analyzer = analyzer or ContentAnalyzer(config=self.config)
        self.image_generator = image_generator or ImageGenerator(config=self.config)
        self.session = session or Session()
        self.on_progress = on_progress

        self._panel_fan_out = ImageFanOut(self.image_generator.generate, label="panel")
        self._vocab_fan_out = ImageFanOut(self.image_generator.generate, label="vocab")

    @property
    def state(self) -> PipelineState:
        return self.session.state

    @property
    def document(self) -> Optional[Document]:
        return self.session.document

    @property
    def error_message(self) -> Optional[str]:
        return self.session.error_message

    # ============================================================
    # Run
    # ============================================================

    async def run(
        self,
        text: str = "",
        image_bytes: Optional[bytes] = None,
        image_mime_type: Optional[str] = None,
        vocab_criteria: str = "",
    ) -> Optional[Document]:
        """
        Generate a complete learning bundle.

        Args:
            text: Source text (may be empty when an image is given)
            image_bytes: Photographed page (optional)
            image_mime_type: MIME type of image_bytes (default image/png)
            vocab_criteria: Optional rule for vocabulary selection

        Returns:
            The Document once Complete, or None if the run errored, was
            ignored because another run is in flight, or went stale.

        Raises:
            ValueError if neither text nor image was provided
        """
        if not has_input(text, image_bytes):
            raise ValueError("Provide source text or an image")

        if self.state not in STARTABLE_STATES:
            logger.warning(f"Run ignored: pipeline is {self.state.value}")
            return None

        if self.state == PipelineState.ERROR:
            self.reset()

        run_id = self.session.begin_run()

        # === Stage 1: Analysis ===
        logger.info("=" * 60)
        logger.info(f"LEARNING PIPELINE run #{run_id}: {(text or '<image>').strip()[:60]}")
        logger.info("=" * 60)
        self._transition(PipelineState.ANALYZING, {"run_id": run_id})

        source_image = (image_bytes, image_mime_type or "image/png") if image_bytes else None
        try:
            document = await self.analyzer.analyze(
                source_text=text,
                source_image=source_image,
                vocab_criteria=vocab_criteria,
            )
        except Exception as e:
            if not self.session.is_current(run_id):
                logger.debug(f"Discarding analysis failure from stale run #{run_id}")
                return None
            logger.error(f"Analysis failed: {e}")
            self._fail(run_id)
            return None

        if not self.session.is_current(run_id):
            logger.debug(f"Discarding analysis result from stale run #{run_id}")
            return None

        self.session.document = document
        self._transition(PipelineState.SYNTHESIZING_IMAGES, {
            "run_id": run_id,
            "panels": len(document.comic_panels),
            "vocabulary": len(document.vocabulary),
        })

        # === Stage 2: Images (panels and vocabulary in parallel) ===
        try:
            panels, vocabulary = await asyncio.gather(
                self._panel_fan_out.run(document.comic_panels, lambda p: p.image_prompt),
                self._vocab_fan_out.run(document.vocabulary, lambda v: v.effective_prompt),
            )
        except Exception as e:
            if not self.session.is_current(run_id):
                return None
            logger.error(f"Image stage failed: {e}")
            self._fail(run_id)
            return None

        if not self.session.is_current(run_id) or self.session.document is not document:
            logger.debug(f"Discarding image results from stale run #{run_id}")
            return None

        # Patch images onto the existing entries; order and identity stay put
        for original, illustrated in zip(document.comic_panels, panels):
            if illustrated.image:
                original.image = illustrated.image
        for original, illustrated in zip(document.vocabulary, vocabulary):
            if illustrated.image:
                original.image = illustrated.image

        # === Done ===
        self._transition(PipelineState.COMPLETE, {
            "run_id": run_id,
            "illustrated_panels": document.illustrated_panels,
            "illustrated_vocabulary": document.illustrated_vocabulary,
        })

        logger.info("=" * 60)
        logger.info("LEARNING PIPELINE COMPLETE")
        logger.info(f"  Panels: {document.illustrated_panels}/{len(document.comic_panels)} illustrated")
        logger.info(f"  Vocabulary: {document.illustrated_vocabulary}/{len(document.vocabulary)} illustrated")
        logger.info(f"  Graph: {len(document.graph.nodes)} nodes, {len(document.graph.links)} links")
        logger.info("=" * 60)

        return document

    # ============================================================
    # User edits
    # ============================================================

    def update_panel_text(self, panel_id: int, patch: dict) -> bool:
        """
        Replace a panel's editable text fields.

        Only allowed while complete. Unknown panel ids are a no-op. Only
        caption and dialogue can change.

        Returns:
            True if a panel was updated
        """
        if self.state != PipelineState.COMPLETE:
            logger.warning(f"Panel edit ignored: pipeline is {self.state.value}")
            return False

        panel = self.session.document.find_panel(panel_id)
        if panel is None:
            logger.debug(f"update_panel_text: no panel {panel_id}")
            return False

        ignored = set(patch) - set(EDITABLE_PANEL_FIELDS)
        if ignored:
            logger.warning(f"Ignoring non-editable panel fields: {sorted(ignored)}")

        for key in EDITABLE_PANEL_FIELDS:
            if key in patch and patch[key] is not None:
                setattr(panel, key, str(patch[key]))
        return True

    async def regenerate_image(self, panel_id: int) -> bool:
        """
        Redraw one panel from its stored prompt.

        Only allowed while complete. On failure the old image stays.

        Returns:
            True if the panel got a new image
        """
        if self.state != PipelineState.COMPLETE:
            logger.warning(f"Regenerate ignored: pipeline is {self.state.value}")
            return False

        document = self.session.document
        panel = document.find_panel(panel_id) if document else None
        if panel is None:
            logger.warning(f"Regenerate ignored: no panel {panel_id}")
            return False

        run_id = self.session.run_id
        logger.info(f"Regenerating panel {panel_id}...")
        try:
            image = await self.image_generator.generate(panel.image_prompt)
        except Exception as e:
            logger.error(f"Failed to regenerate image for panel {panel_id}: {e}")
            return False

        if not self.session.is_current(run_id) or self.session.document is not document:
            logger.debug(f"Discarding regenerated image for panel {panel_id} (stale run)")
            return False

        panel.image = image
        logger.info(f"Panel {panel_id} regenerated")
        return True

    def reset(self) -> bool:
        """Clear the Document and return to idle. Only from complete or error."""
        if self.state not in (PipelineState.COMPLETE, PipelineState.ERROR):
            logger.warning(f"Reset ignored: pipeline is {self.state.value}")
            return False
        self.session.teardown()
        self._transition(PipelineState.IDLE, {})
        return True

    # ============================================================
    # Surface
    # ============================================================

    def snapshot(self) -> dict:
        """Current state, error text and Document in interchange shape."""
        document = self.session.document
        return {
            "state": self.state.value,
            "error": self.session.error_message,
            "runId": self.session.run_id,
            "document": document.to_dict() if document else None,
            "illustrated": {
                "panels": document.illustrated_panels if document else 0,
                "vocabulary": document.illustrated_vocabulary if document else 0,
            },
        }

    # ============================================================
    # Internals
    # ============================================================

    def _fail(self, run_id: int):
        self.session.document = None
        self.session.error_message = ERROR_MESSAGE
        self._transition(PipelineState.ERROR, {"run_id": run_id, "error": ERROR_MESSAGE})

    def _transition(self, target: PipelineState, details: dict):
        current = self.session.state
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(current, target)
        self.session.state = target
        logger.info(f"Pipeline: {current.value} -> {target.value}")
        self._progress(target.value, details)

    def _progress(self, stage: str, details: dict):
        """Report progress if callback is set."""
        if self.on_progress:
            try:
                self.on_progress(stage, details)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
