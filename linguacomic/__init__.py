"""
LinguaComic — learning bundles from source text or a textbook photo.

One run → four views of the same material:
1. Summary
2. 4-panel illustrated comic
3. Concept graph (force layout, editable)
4. Illustrated vocabulary cards

Usage:
    from linguacomic import LearningBundlePipeline, GraphModel

    pipeline = LearningBundlePipeline()
    document = await pipeline.run(text="The water cycle ...")
    graph = GraphModel(document)
    graph.layout.run()
"""

from linguacomic.graph_model import GraphMode, GraphModel
from linguacomic.models import Document, Graph, Link, Node, Panel, PipelineState, VocabItem
from linguacomic.pipeline import LearningBundlePipeline

__all__ = [
    "LearningBundlePipeline",
    "GraphModel",
    "GraphMode",
    "Document",
    "Panel",
    "VocabItem",
    "Graph",
    "Node",
    "Link",
    "PipelineState",
]
