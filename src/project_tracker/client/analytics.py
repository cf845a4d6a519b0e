"""Dashboard aggregates computed from a project list."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from ..models import Project, ProjectPriority, ProjectStatus, parse_iso_datetime


@dataclass(slots=True)
class ProjectStatistics:
    """Aggregate counters for a set of projects."""

    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    completed: int = 0
    in_progress: int = 0
    overdue: int = 0
    completion_rate: int = 0
    average_progress: int = 0


@dataclass(slots=True)
class MonthlyActivity:
    month: int
    created: int = 0
    completed: int = 0


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _is_overdue(project: Project, today: date) -> bool:
    if project.status is ProjectStatus.COMPLETED:
        return False
    deadline = parse_iso_datetime(project.deadline)
    if deadline is None:
        return False
    return deadline.date() < today


def project_statistics(projects: Sequence[Project], today: date | None = None) -> ProjectStatistics:
    """Summarise ``projects``; deadlines that do not parse never count as overdue."""

    today = today or datetime.now(timezone.utc).date()
    by_status = {status.value: 0 for status in ProjectStatus}
    by_priority = {priority.value: 0 for priority in ProjectPriority}
    overdue = 0
    progress_sum = 0
    for project in projects:
        by_status[project.status.value] += 1
        by_priority[project.priority.value] += 1
        progress_sum += project.progress
        if _is_overdue(project, today):
            overdue += 1

    total = len(projects)
    completed = by_status[ProjectStatus.COMPLETED.value]
    return ProjectStatistics(
        total=total,
        by_status=by_status,
        by_priority=by_priority,
        completed=completed,
        in_progress=by_status[ProjectStatus.IN_PROGRESS.value],
        overdue=overdue,
        completion_rate=_round_half_up(completed * 100 / total) if total else 0,
        average_progress=_round_half_up(progress_sum / total) if total else 0,
    )


def monthly_activity(projects: Iterable[Project], year: int) -> list[MonthlyActivity]:
    """Twelve buckets of projects created (and of those, completed) per month of ``year``."""

    buckets = [MonthlyActivity(month=month) for month in range(1, 13)]
    for project in projects:
        created = parse_iso_datetime(project.created_at)
        if created is None or created.year != year:
            continue
        bucket = buckets[created.month - 1]
        bucket.created += 1
        if project.status is ProjectStatus.COMPLETED:
            bucket.completed += 1
    return buckets


def _created_sort_key(project: Project) -> datetime:
    return parse_iso_datetime(project.created_at) or datetime.min.replace(tzinfo=timezone.utc)


def recent_projects(projects: Iterable[Project], limit: int = 5) -> list[Project]:
    if limit <= 0:
        return []
    return sorted(projects, key=_created_sort_key, reverse=True)[:limit]


def filter_projects(
    projects: Iterable[Project],
    search: str | None = None,
    status: ProjectStatus | str | None = None,
) -> list[Project]:
    needle = (search or "").strip().casefold()
    wanted = ProjectStatus(status) if status else None
    matches: list[Project] = []
    for project in projects:
        if wanted is not None and project.status is not wanted:
            continue
        if needle and needle not in project.title.casefold() and needle not in project.description.casefold():
            continue
        matches.append(project)
    return matches


__all__ = [
    "MonthlyActivity",
    "ProjectStatistics",
    "filter_projects",
    "monthly_activity",
    "project_statistics",
    "recent_projects",
]
