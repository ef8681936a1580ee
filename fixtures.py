"""
Shared test doubles for the LinguaComic test modules.

FakeAnalyzer / FakeImageGenerator stand in for the Gemini and fal.ai
collaborators so the pipeline, graph and dashboard can be tested offline.
"""

import asyncio
import copy
from typing import Optional

from linguacomic.errors import AnalysisError, ImageGenerationError
from linguacomic.models import Document

# 4 panels, 3 words, 5 nodes / 4 links
WATER_CYCLE = {
    "summary": "Water moves between the sea, the sky and the land in a loop.",
    "comicPanels": [
        {"id": 1, "imagePrompt": "PANEL-1 sun warming the sea, girl on a beach",
         "caption": "The sun heats the ocean.", "dialogue": "It's so hot today!"},
        {"id": 2, "imagePrompt": "PANEL-2 vapour rising into clouds",
         "caption": "Water turns into vapour.", "dialogue": "Where does the water go?"},
        {"id": 3, "imagePrompt": "PANEL-3 dark clouds over mountains",
         "caption": "Vapour cools into clouds.", "dialogue": "Look at those clouds!"},
        {"id": 4, "imagePrompt": "PANEL-4 rain falling into a river",
         "caption": "Rain returns water to the land.", "dialogue": "And back it comes!"},
    ],
    "graph": {
        "nodes": [
            {"id": "sea", "label": "Sea", "group": 1},
            {"id": "evaporation", "label": "Evaporation", "group": 2},
            {"id": "clouds", "label": "Clouds", "group": 2},
            {"id": "rain", "label": "Rain", "group": 2},
            {"id": "river", "label": "River", "group": 3},
        ],
        "links": [
            {"sourceId": "sea", "targetId": "evaporation", "relationship": "heated into"},
            {"sourceId": "evaporation", "targetId": "clouds", "relationship": "condenses as"},
            {"sourceId": "clouds", "targetId": "rain", "relationship": "falls as"},
            {"sourceId": "rain", "targetId": "river", "relationship": "collects in"},
        ],
    },
    "vocabulary": [
        {"word": "evaporate", "definition": "to turn from liquid into gas",
         "example": "Puddles evaporate in the sun.", "imagePrompt": "VOCAB-evaporate puddle in sunshine"},
        {"word": "condense", "definition": "to turn from gas into liquid",
         "example": "Steam condenses on a cold window.", "imagePrompt": "VOCAB-condense misty window"},
        {"word": "precipitation", "definition": "water falling from clouds",
         "example": "Snow is a kind of precipitation.", "imagePrompt": ""},
    ],
}


def water_cycle_payload() -> dict:
    return copy.deepcopy(WATER_CYCLE)


def water_cycle_document() -> Document:
    return Document.from_dict(water_cycle_payload())


class FakeAnalyzer:
    """Returns a fresh Document per call, or fails, optionally waiting on a gate."""

    def __init__(self, payload: Optional[dict] = None, fail: bool = False, gate: Optional[asyncio.Event] = None):
        self.payload = payload if payload is not None else water_cycle_payload()
        self.fail = fail
        self.gate = gate
        self.calls = []

    async def analyze(self, source_text=None, source_image=None, vocab_criteria=""):
        self.calls.append({
            "source_text": source_text,
            "source_image": source_image,
            "vocab_criteria": vocab_criteria,
        })
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.fail:
            raise AnalysisError("analysis model unavailable")
        return Document.from_dict(copy.deepcopy(self.payload))


class FakeImageGenerator:
    """
    Returns a URL per prompt. Prompts containing any marker in `fail_on`
    raise. `delays` maps a marker to a sleep, used to scramble completion
    order.
    """

    def __init__(self, fail_on=(), delays: Optional[dict] = None, gate: Optional[asyncio.Event] = None):
        self.fail_on = set(fail_on)
        self.delays = delays or {}
        self.gate = gate
        self.prompts = []
        self.completed = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.counter = 0

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            delay = next((d for marker, d in self.delays.items() if marker in prompt), 0)
            await asyncio.sleep(delay)
            if any(marker in prompt for marker in self.fail_on):
                raise ImageGenerationError(f"No image data returned for {prompt[:20]}")
            self.counter += 1
            self.completed.append(prompt)
            return f"https://images.test/{self.counter}.png"
        finally:
            self.in_flight -= 1
