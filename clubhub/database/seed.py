"""
clubhub.database.seed — Default Catalogue Seeder
=================================================

Baseline task categories and recurring tasks so a fresh install has
something to show on the activities page.

Idempotent — only inserts names that don't already exist.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from clubhub.database.models import Category, RecurringTask, RecurringTaskType

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Development",
    "Design",
    "Marketing",
    "Events",
    "Operations",
)

# name -> (type, points, description)
DEFAULT_RECURRING_TASKS: dict[str, tuple[RecurringTaskType, int, str]] = {
    "Daily Check-in": (
        RecurringTaskType.CHECK_IN, 5, "Say hi in the club channel.",
    ),
    "Meeting Participation": (
        RecurringTaskType.MEETING_PARTICIPATION, 15, "Join the weekly club meeting.",
    ),
}


def seed_defaults(engine: Engine) -> int:
    """Insert any missing default rows.  Returns the number inserted."""
    inserted = 0
    with Session(engine) as session:
        existing_categories = set(session.scalars(select(Category.name)).all())
        for name in DEFAULT_CATEGORIES:
            if name not in existing_categories:
                session.add(Category(name=name))
                inserted += 1

        existing_recurring = set(session.scalars(select(RecurringTask.name)).all())
        for name, (task_type, points, description) in DEFAULT_RECURRING_TASKS.items():
            if name not in existing_recurring:
                session.add(RecurringTask(
                    name=name,
                    type=task_type.value,
                    points=points,
                    description=description,
                ))
                inserted += 1

        session.commit()

    if inserted:
        logger.info("Seeded %d default catalogue rows", inserted)
    return inserted
