"""
LinguaComic — Content Analyzer.

Takes source text and/or a photographed textbook page and uses Gemini to
produce the structured learning bundle: summary, 4-panel comic script,
concept graph and vocabulary list.

Output: a validated Document with no images yet.
"""

import asyncio
import json
import logging
from typing import Optional

import google.generativeai as genai

from linguacomic.config import AppConfig, load_config
from linguacomic.errors import AnalysisError
from linguacomic.models import Document

logger = logging.getLogger(__name__)

# The master prompt that turns source material into structured JSON
ANALYSIS_PROMPT = """You are an expert English teacher and manga creator.
Analyze the provided content (text or image of a textbook).

Your task is to:
1. Summarize the key concept.
2. Create a script for a 4-panel educational manga/comic that explains the concept or tells the story.
   - The 'imagePrompt' must be descriptive enough for an AI image generator (describe characters, setting, style).
   - The 'caption' is the narrative box.
   - The 'dialogue' is what characters say.
3. Extract the logical structure of the concept for visualization (nodes and links).
   - Node 'group' is 1, 2 or 3 and classifies the node (e.g. cause, process, result).
   - Every link 'sourceId' and 'targetId' must be the id of a node.
4. Extract vocabulary words. {vocab_instruction}
   - Provide a definition and an example sentence.
   - Provide an 'imagePrompt' to generate an image that represents the word or the example sentence visually.

== JSON OUTPUT FORMAT ==

Return ONLY valid JSON, no markdown fences, no commentary:

{{
  "summary": "Short summary of the key concept",
  "comicPanels": [
    {{"id": 1, "imagePrompt": "...", "caption": "...", "dialogue": "..."}}
  ],
  "graph": {{
    "nodes": [{{"id": "evaporation", "label": "Evaporation", "group": 1}}],
    "links": [{{"sourceId": "evaporation", "targetId": "condensation", "relationship": "leads to"}}]
  }},
  "vocabulary": [
    {{"word": "...", "definition": "...", "example": "...", "imagePrompt": "..."}}
  ]
}}
"""

DEFAULT_VOCAB_INSTRUCTION = "Select difficult or key words suitable for learners."


def build_prompt(vocab_criteria: str = "") -> str:
    """Render the analysis prompt with the vocabulary selection rule."""
    if vocab_criteria and vocab_criteria.strip():
        instruction = f'Select vocabulary based on this criteria: "{vocab_criteria.strip()}".'
    else:
        instruction = DEFAULT_VOCAB_INSTRUCTION
    return ANALYSIS_PROMPT.format(vocab_instruction=instruction)


def extract_json(text: str) -> str:
    """Extract JSON from model response, handling markdown fences."""
    if "```json" in text:
        text = text.split("```json", 1)[1]
        text = text.rsplit("```", 1)[0]
    elif "```" in text:
        text = text.split("```", 1)[1]
        text = text.rsplit("```", 1)[0]
    return text.strip()


def parse_analysis(raw_text: Optional[str]) -> Document:
    """
    Parse and validate a raw analysis response.

    Every failure (empty body, invalid JSON, schema mismatch) is raised
    as AnalysisError.
    """
    if not raw_text or not raw_text.strip():
        raise AnalysisError("No response from analysis model")

    try:
        payload = json.loads(extract_json(raw_text))
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Analysis response is not valid JSON: {e}") from e

    try:
        return Document.from_dict(payload)
    except ValueError as e:
        raise AnalysisError(f"Analysis response does not match schema: {e}") from e


class ContentAnalyzer:
    """Generates structured learning bundles from source text or images."""

    def __init__(self, config: Optional[AppConfig] = None, model=None):
        self.config = config or load_config()
        self._model = model

    def _get_model(self):
        """Lazy-load the Gemini model."""
        if self._model is None:
            if not self.config.google_api_key:
                raise AnalysisError("GOOGLE_API_KEY not set")
            genai.configure(api_key=self.config.google_api_key)
            self._model = genai.GenerativeModel(
                self.config.analysis_model,
                generation_config={
                    "response_mime_type": "application/json",
                    "temperature": self.config.analysis_temperature,
                },
            )
        return self._model

    async def analyze(
        self,
        source_text: Optional[str] = None,
        source_image: Optional[tuple[bytes, str]] = None,
        vocab_criteria: str = "",
    ) -> Document:
        """
        Analyze source material into a Document.

        Args:
            source_text: Raw text to analyze (optional if an image is given)
            source_image: (bytes, mime_type) of a textbook photo (optional)
            vocab_criteria: Free-text rule for which words to pick

        Returns:
            Document with panels, graph and vocabulary (no images)

        Raises:
            AnalysisError on any failure
        """
        parts = [build_prompt(vocab_criteria)]
        if source_image:
            data, mime_type = source_image
            parts.append({"mime_type": mime_type or "image/png", "data": data})
        if source_text and source_text.strip():
            parts.append(f"Source Text: {source_text}")

        preview = (source_text or "<image>")[:80]
        logger.info(f"Analyzing content: {preview}...")

        try:
            model = self._get_model()
            # Blocking SDK call
            response = await asyncio.to_thread(model.generate_content, parts)
            raw_text = response.text
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(f"Analysis request failed: {e}") from e

        document = parse_analysis(raw_text)
        logger.info(
            f"Analysis ready: {len(document.comic_panels)} panels, "
            f"{len(document.vocabulary)} words, "
            f"{len(document.graph.nodes)} nodes / {len(document.graph.links)} links"
        )
        dangling = document.graph.dangling_links()
        if dangling:
            logger.warning(f"Analysis graph has {len(dangling)} dangling link(s)")
        return document
