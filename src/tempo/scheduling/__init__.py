"""Deterministic scheduling heuristics: gaps, task fitting, day layout, triage."""

from tempo.scheduling.day_plan import plan_day, summarize_plan
from tempo.scheduling.fitting import fit_tasks, score_task
from tempo.scheduling.gaps import find_gaps, find_overlaps
from tempo.scheduling.models import DayPreferences, FitResult, FitStrategy, Gap, ScoredWorkItem
from tempo.scheduling.triage import EmailScore, Quadrant, quadrant_for, score_email

__all__ = [
    "DayPreferences",
    "EmailScore",
    "FitResult",
    "FitStrategy",
    "Gap",
    "Quadrant",
    "ScoredWorkItem",
    "find_gaps",
    "find_overlaps",
    "fit_tasks",
    "plan_day",
    "quadrant_for",
    "score_email",
    "score_task",
    "summarize_plan",
]
