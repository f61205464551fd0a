"""Persist plan and review documents under the project's ``docs/`` tree."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from ..errors import PersistenceError
from ..memory.schema import Plan, Review
from ..utils.slug import document_slug
from .markdown import plan_to_markdown, review_to_markdown

LOGGER = logging.getLogger(__name__)

PLANS_DIR = Path("docs") / "plans"
REVIEWS_DIR = Path("docs") / "reviews"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

__all__ = [
    "PLANS_DIR",
    "REVIEWS_DIR",
    "TIMESTAMP_FORMAT",
    "document_path",
    "plan_document_path",
    "review_document_path",
    "save_plan_document",
    "save_review_document",
    "write_document",
]


def document_path(
    directory: Path,
    goal: str,
    *,
    now: datetime | None = None,
    fallback: str = "plan",
) -> Path:
    """Return ``{slug}-{yyyyMMdd-HHmmss}.md`` inside ``directory``.

    When a file with that name already exists a numeric suffix is appended so two runs
    within the same second never overwrite each other.
    """
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    stem = f"{document_slug(goal, fallback=fallback)}-{stamp}"
    candidate = directory / f"{stem}.md"
    counter = 2
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}.md"
        counter += 1
    return candidate


def plan_document_path(project_root: Path, goal: str, *, now: datetime | None = None) -> Path:
    return document_path(project_root / PLANS_DIR, goal, now=now, fallback="plan")


def review_document_path(project_root: Path, goal: str, *, now: datetime | None = None) -> Path:
    return document_path(project_root / REVIEWS_DIR, goal, now=now, fallback="review")


def write_document(path: Path, content: str) -> Path:
    """Write ``content`` to ``path``, creating parents; wraps ``OSError``."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as error:
        raise PersistenceError(f"Could not write {path}: {error}") from error
    LOGGER.debug("Wrote document %s (%d chars)", path, len(content))
    return path


def save_plan_document(project_root: Path, plan: Plan, *, now: datetime | None = None) -> Path:
    path = plan_document_path(project_root, plan.goal, now=now)
    return write_document(path, plan_to_markdown(plan))


def save_review_document(
    project_root: Path,
    review: Review,
    *,
    goal: str,
    now: datetime | None = None,
) -> Path:
    path = review_document_path(project_root, goal, now=now)
    title = f"Review: {goal}" if goal.strip() else "Review"
    return write_document(path, review_to_markdown(review, title=title))
