"""Task scoring and greedy bin-filling for a single time block."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from tempo.scheduling.models import FitResult, FitStrategy, ScoredWorkItem
from tempo.services.models import Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_ITEM_MINUTES = 30

_PRIORITY_SCORES = {TaskPriority.high: 100, TaskPriority.medium: 50, TaskPriority.low: 10}
_QUICK_WIN_BONUS = {TaskPriority.high: 20, TaskPriority.medium: 10, TaskPriority.low: 0}
_MIXED_BASE = {TaskPriority.high: 50, TaskPriority.medium: 30, TaskPriority.low: 10}

_REASONING = {
    FitStrategy.PRIORITY: (
        "Highest priority task that fits the time slot",
        "High priority tasks to maximize impact",
    ),
    FitStrategy.QUICK_WINS: (
        "Quick task to complete and build momentum",
        "Multiple quick completions for productivity boost",
    ),
    FitStrategy.MIXED: (
        "Best balance of priority and time fit",
        "Balanced mix of priority and efficient time use",
    ),
}


def task_minutes(task: Task, default_minutes: int = DEFAULT_ITEM_MINUTES) -> int:
    return task.estimated_minutes or default_minutes


def score_task(
    task: Task,
    available_minutes: int,
    strategy: FitStrategy | str,
    *,
    default_minutes: int = DEFAULT_ITEM_MINUTES,
) -> float:
    """Score *task* for a block of *available_minutes* under *strategy*.

    - ``priority``: high 100, medium 50, low 10.
    - ``quick_wins``: shorter is better, ``100 - minutes / available * 50``,
      plus 20 for high and 10 for medium priority.
    - ``mixed``: high 50, medium 30, low 10, plus 30 when the task fills
      60-90% of the block or 20 when it fills at least 40%.
    """
    strategy = FitStrategy(strategy)
    minutes = task_minutes(task, default_minutes)

    if strategy is FitStrategy.PRIORITY:
        return float(_PRIORITY_SCORES[task.priority])

    if strategy is FitStrategy.QUICK_WINS:
        return 100 - (minutes / available_minutes) * 50 + _QUICK_WIN_BONUS[task.priority]

    score = float(_MIXED_BASE[task.priority])
    ratio = minutes / available_minutes
    if 0.6 <= ratio <= 0.9:
        score += 30
    elif ratio >= 0.4:
        score += 20
    return score


def fit_tasks(
    tasks: Iterable[Task],
    available_minutes: int,
    strategy: FitStrategy | str = FitStrategy.MIXED,
    *,
    max_items: int = 3,
    min_item_minutes: int = 15,
    default_minutes: int = DEFAULT_ITEM_MINUTES,
) -> FitResult:
    """Choose up to *max_items* tasks whose combined length fits the block.

    Eligible tasks are not completed and no longer than the block.  They are
    ranked by score (descending), then length (ascending), then title, and
    taken greedily while they fit.  Filling stops once the remaining time
    drops below *min_item_minutes*.
    """
    strategy = FitStrategy(strategy)
    result = FitResult(strategy=strategy, available_minutes=available_minutes)
    if available_minutes <= 0:
        result.reasoning = "No time available"
        return result

    candidates = []
    for task in tasks:
        if task.status == TaskStatus.completed:
            continue
        minutes = task_minutes(task, default_minutes)
        if minutes > available_minutes:
            continue
        score = score_task(task, available_minutes, strategy, default_minutes=default_minutes)
        candidates.append(ScoredWorkItem(task=task, score=score, minutes=minutes))

    candidates.sort(key=lambda item: (-item.score, item.minutes, item.task.title))

    remaining = available_minutes
    for item in candidates:
        if len(result.items) >= max_items or remaining < min_item_minutes:
            break
        if item.minutes <= remaining:
            result.items.append(item)
            remaining -= item.minutes

    if not result.items:
        result.reasoning = f"No backlog tasks fit in {available_minutes} minutes"
    else:
        single, multiple = _REASONING[strategy]
        result.reasoning = single if len(result.items) == 1 else multiple

    logger.debug(
        "Fitted %d of %d candidate task(s) into %d minutes (%s)",
        len(result.items),
        len(candidates),
        available_minutes,
        strategy,
    )
    return result
