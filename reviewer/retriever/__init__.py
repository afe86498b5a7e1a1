"""
Retriever - SOP context for review prompts

Key Components:
- SopRetriever: Embeds review input and queries the SOP index
- PromptAugmenter: Renders retrieved SOPs into a delimited prompt block

Pipeline:
1. Embed the diff chunk
2. Query the index for the top 3 SOPs
3. Append the formatted SOPs to the review prompt
"""

from .formatter import PromptAugmenter, format_sops_for_prompt
from .sop_retriever import SOP, SopRetriever

__all__ = [
    "PromptAugmenter",
    "format_sops_for_prompt",
    "SOP",
    "SopRetriever",
]
