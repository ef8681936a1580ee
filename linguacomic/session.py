"""
LinguaComic — Session.

The single live Document plus its pipeline state, held explicitly by the
pipeline instead of living in module globals.
"""

from dataclasses import dataclass
from typing import Optional

from linguacomic.models import Document, PipelineState


@dataclass
class Session:
    """In-memory state for one user's workflow."""
    state: PipelineState = PipelineState.IDLE
    document: Optional[Document] = None
    error_message: Optional[str] = None
    run_id: int = 0  # Advanced on every run start and reset

    def begin_run(self) -> int:
        """Tag a new run; results carrying an older id are stale."""
        self.run_id += 1
        self.document = None
        self.error_message = None
        return self.run_id

    def teardown(self):
        """Drop the Document and invalidate any in-flight results."""
        self.run_id += 1
        self.document = None
        self.error_message = None

    def is_current(self, run_id: int) -> bool:
        return run_id == self.run_id
