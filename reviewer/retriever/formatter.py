"""
Prompt augmentation with retrieved SOPs.

Renders SOPs as a block wrapped in <relevant_sops> tags so that later
stages can find or strip it.
"""

import re
from typing import List

from .sop_retriever import SOP

OPEN_TAG = "<relevant_sops>"
CLOSE_TAG = "</relevant_sops>"

# Anchored at the end of the text; tags inside the message are left alone.
_BLOCK_RE = re.compile(
    r"\n" + re.escape(OPEN_TAG) + r"\n.*\n" + re.escape(CLOSE_TAG) + r"\n\Z",
    re.DOTALL,
)


def format_sops_for_prompt(sops: List[SOP]) -> str:
    """Format SOPs into a readable string for inclusion in prompts"""
    if not sops:
        return ""

    entries = []
    for index, sop in enumerate(sops, start=1):
        heading = f"### Relevant SOP {index}"
        if sop.id:
            heading += f" (ID: {sop.id})"
        if sop.score is not None:
            heading += f" (relevance: {sop.score:.3f})"
        entries.append(f"{heading}\n\n{sop.text}")

    body = "\n\n".join(entries)
    return f"\n{OPEN_TAG}\n{body}\n{CLOSE_TAG}\n"


class PromptAugmenter:
    """Appends formatted SOPs to a prompt."""

    def format(self, sops: List[SOP]) -> str:
        return format_sops_for_prompt(sops)

    def augment(self, message: str, sops: List[SOP]) -> str:
        return message + self.format(sops)

    @staticmethod
    def strip(text: str) -> str:
        """Remove a SOP block appended by augment(); the message is kept intact."""
        return _BLOCK_RE.sub("", text, count=1)
