"""
Plan document codec and persistence helpers.
"""

from .documents import save_plan_document, save_review_document
from .markdown import plan_from_markdown, plan_to_markdown, review_to_markdown

__all__ = [
    "plan_from_markdown",
    "plan_to_markdown",
    "review_to_markdown",
    "save_plan_document",
    "save_review_document",
]
