"""
SOP Reviewer

Core of an automated code reviewer: asks Claude to comment on code
changes, with standard operating procedures (SOPs) retrieved from a
Pinecone index appended to the prompt as guidance.

Philosophy:
- The model call never raises; failures degrade to an empty answer
- SOP retrieval is best-effort; failures degrade to no context
- Encoder and index client are created once, on first use

Usage:
    from reviewer import build_reviewer
    from reviewer.common import PromptInvoker, load_config
    from reviewer.retriever import SopRetriever, PromptAugmenter
"""

from .review import SopReviewer, build_reviewer

__version__ = "0.1.0"

__all__ = [
    "SopReviewer",
    "build_reviewer",
]
