"""
LinguaComic — Exceptions.

Collaborator failures subclass RuntimeError so call sites can keep the
broad `except Exception` handling used around every model call.
"""


class LinguaComicError(Exception):
    """Base class for all LinguaComic errors."""


class AnalysisError(LinguaComicError, RuntimeError):
    """The analysis model call failed or returned an unusable structure."""


class ImageGenerationError(LinguaComicError, RuntimeError):
    """The image model returned no image or the request failed."""


class InvalidTransition(LinguaComicError):
    """A pipeline state change outside the transition table was attempted."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Illegal pipeline transition: {current.value} -> {target.value}")


class GraphModeError(LinguaComicError):
    """A graph operation was called in the wrong display mode."""
