"""Timeline scheduling utilities.

Contains utilities for:
- normalizing dates and computing days until a due date,
- bucketing due dates into urgency bands,
- rolling job statuses up into task progress,
- describing a task's relative-scheduling dependency,
- ordering a property's tasks so dependents sit next to their dependency,
- spotting dangling and circular dependency references.

Every function here is pure: inputs are plain dicts shaped like
``QuerySet.values()`` rows and are never mutated. Referential anomalies
(missing dependencies, cycles) degrade to a best-effort result instead of
raising.
"""

import logging
import math
from datetime import date, datetime, tzinfo
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

AFTER = "after"
BEFORE = "before"
COMPLETED = "completed"


def _as_date(d: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    """Normalize an input to a local `datetime.date`.

    Accepts:
      - None -> None
      - datetime instance -> its calendar date (aware values are converted to `tz` first,
        or to the process time zone when `tz` is None)
      - date instance -> returned unchanged
      - ISO-like string, optionally with time (e.g. '2025-11-30' or '2025-11-30T12:00:00Z')
      - raises ValueError for anything else
    """
    if d is None:
        return None
    if isinstance(d, str):
        try:
            d = datetime.fromisoformat(d.replace("Z", "+00:00"))
        except ValueError:
            try:
                d = datetime.fromisoformat(d.split("T", 1)[0])
            except ValueError:
                raise ValueError(f"Invalid date string: {d!r}")
    if isinstance(d, datetime):
        if d.tzinfo is not None:
            d = d.astimezone(tz)
        return d.date()
    if isinstance(d, date):
        return d
    raise ValueError(f"Invalid date type: {type(d)}")


def days_until_due(due_date: Any, now: Any = None,
                   tz: Optional[tzinfo] = None) -> Optional[int]:
    """Return whole calendar days from `now` until `due_date`.

    None when no due date is set. Negative means overdue by that many days,
    0 means due today. Both operands are reduced to local calendar days, so
    any time on the same day counts as 0. Pass the same `tz` the caller
    used for `now` when `due_date` is timezone-aware.
    """
    due = _as_date(due_date, tz)
    if due is None:
        return None
    today = _as_date(now, tz) if now is not None else date.today()
    return (due - today).days


def classify_urgency(days: Optional[int]) -> Optional[str]:
    """Bucket a `days_until_due` value.

      - no date: None
      - overdue: 'overdue'
      - due today: 'due_today'
      - due in <=3 days: 'due_soon'
      - due in <=7 days: 'upcoming'
      - otherwise: 'later'
    """
    if days is None:
        return None
    if days < 0:
        return "overdue"
    if days == 0:
        return "due_today"
    if days <= 3:
        return "due_soon"
    if days <= 7:
        return "upcoming"
    return "later"


def task_progress(task: Dict[str, Any], jobs: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Roll the statuses of a task's jobs up into a completion percentage.

    Args:
        task: task dict providing 'id'
        jobs: every job known to the caller; only those with a matching 'task_id' count

    Returns:
        {"progress": 0-100, "fully_completed": bool}. A task without jobs is 0 and
        never fully completed.
    """
    task_jobs = [j for j in jobs if j.get("task_id") == task.get("id")]
    if not task_jobs:
        return {"progress": 0, "fully_completed": False}

    completed = sum(1 for j in task_jobs if j.get("status") == COMPLETED)
    # half rounds up: 1 of 8 is 13, not 12
    progress = int(math.floor(100 * completed / len(task_jobs) + 0.5))
    return {"progress": progress, "fully_completed": completed == len(task_jobs)}


def _direction(task: Dict[str, Any]) -> str:
    return BEFORE if task.get("relative_direction") == BEFORE else AFTER


def _resolve_dependency(task: Dict[str, Any],
                        by_id: Dict[Any, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return the task `task` depends on, or None for no/dangling/cross-property references."""
    dep_id = task.get("depends_on_task_id")
    if dep_id is None:
        return None
    dep = by_id.get(dep_id)
    if dep is None:
        return None
    owner = task.get("property_id")
    if owner is not None and dep.get("property_id") not in (None, owner):
        return None
    return dep


def describe_dependency(task: Dict[str, Any], tasks: Sequence[Dict[str, Any]]) -> Optional[str]:
    """Human-readable phrase for a task's relative-scheduling dependency.

    >>> describe_dependency({"id": 2, "depends_on_task_id": 1, "relative_due_days": 5},
    ...                     [{"id": 1, "title": "Survey"}])
    '5 days after "Survey" completes'
    """
    dep = _resolve_dependency(task, {t.get("id"): t for t in tasks})
    if dep is None:
        return None

    direction = _direction(task)
    title = dep.get("title") or ""
    days = task.get("relative_due_days")
    if days is not None and days > 0:
        unit = "day" if days == 1 else "days"
        verb = "starts" if direction == BEFORE else "completes"
        return f'{days} {unit} {direction} "{title}" {verb}'
    return f'{direction} "{title}"'


def sort_by_dependencies(tasks: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Order one property's tasks so each dependent sits beside its dependency.

    Tasks are visited in input order. A task with a resolvable dependency has
    that dependency placed first (depth-first), then goes immediately after it
    ('after', the default) or immediately before it ('before'). Tasks with no
    dependency, a dangling one, or one abandoned because it closes a cycle are
    appended to the end. Every input task appears exactly once.
    """
    by_id = {t.get("id"): t for t in tasks}
    ordered: List[Dict[str, Any]] = []
    placed = set()      # finalized ids
    resolving = set()   # ids on the current recursion stack

    def place(task: Dict[str, Any]) -> None:
        tid = task.get("id")
        if tid in placed:
            return
        if tid in resolving:
            logger.debug("dependency cycle reached task %s; abandoning branch", tid)
            return

        resolving.add(tid)
        dep = _resolve_dependency(task, by_id)
        if dep is None and task.get("depends_on_task_id") is not None:
            logger.debug("task %s depends on unknown task %s", tid, task.get("depends_on_task_id"))
        if dep is not None:
            place(dep)
        resolving.discard(tid)

        anchor = None
        if dep is not None and dep.get("id") in placed:
            anchor = next(i for i, t in enumerate(ordered) if t.get("id") == dep.get("id"))

        if anchor is None:
            ordered.append(task)
        elif _direction(task) == BEFORE:
            ordered.insert(anchor, task)
        else:
            ordered.insert(anchor + 1, task)
        placed.add(tid)

    for t in tasks:
        place(t)

    return ordered


def find_dangling_dependencies(tasks: Sequence[Dict[str, Any]]) -> List[Any]:
    """Return ids of tasks whose dependency does not resolve inside `tasks`."""
    by_id = {t.get("id"): t for t in tasks}
    return [
        t.get("id") for t in tasks
        if t.get("depends_on_task_id") is not None and _resolve_dependency(t, by_id) is None
    ]


def detect_circular_dependencies(tasks: Sequence[Dict[str, Any]]) -> List[List[int]]:
    """Detect cycles in the dependency graph.

    Args:
        tasks: sequence of task dicts. Each provides an 'id' and optionally a
               'depends_on_task_id' (int or str).

    Returns:
        A list of cycles. Each cycle is the id path around the loop, rotated to start
        at its smallest id (e.g. [1, 1] for a self-dependency, [1, 2, 3, 1] for three tasks).
    """
    graph: Dict[int, Optional[int]] = {}
    for t in tasks:
        try:
            tid = int(t.get("id"))
        except (TypeError, ValueError):
            continue
        dep = t.get("depends_on_task_id")
        try:
            graph[tid] = int(dep) if dep is not None else None
        except (TypeError, ValueError):
            graph[tid] = None

    visited = set()            # permanently visited nodes
    stack: List[int] = []      # current DFS path
    cycles: List[List[int]] = []
    seen_cycles: set = set()

    def dfs(node: int) -> None:
        if node in stack:
            loop = stack[stack.index(node):]
            start = loop.index(min(loop))
            ordered = loop[start:] + loop[:start]
            tup = tuple(ordered)
            if tup not in seen_cycles:
                seen_cycles.add(tup)
                cycles.append(ordered + [ordered[0]])
            return
        if node in visited or node not in graph:
            return

        visited.add(node)
        stack.append(node)
        nxt = graph[node]
        if nxt is not None:
            dfs(nxt)
        stack.pop()

    for n in list(graph.keys()):
        if n not in visited:
            dfs(n)

    if cycles:
        logger.debug("dependency cycles found: %s", cycles)
    return cycles


def build_timeline(tasks: Sequence[Dict[str, Any]],
                   jobs: Sequence[Dict[str, Any]],
                   now: Any = None,
                   tz: Optional[tzinfo] = None) -> List[Dict[str, Any]]:
    """Sort a property's tasks and annotate each one for display.

    Returns new dicts (shallow copies of the inputs) carrying 'progress',
    'fully_completed', 'days_until_due', 'urgency', 'dependency_description'
    and a 'jobs' list whose entries carry their own 'days_until_due' and 'urgency'.
    """
    timeline = []
    for t in sort_by_dependencies(tasks):
        item = dict(t)
        item.update(task_progress(t, jobs))
        item["days_until_due"] = days_until_due(t.get("due_date"), now, tz)
        item["urgency"] = classify_urgency(item["days_until_due"])
        item["dependency_description"] = describe_dependency(t, tasks)

        task_jobs = []
        for j in jobs:
            if j.get("task_id") != t.get("id"):
                continue
            job = dict(j)
            job["days_until_due"] = days_until_due(j.get("due_date"), now, tz)
            job["urgency"] = classify_urgency(job["days_until_due"])
            task_jobs.append(job)
        item["jobs"] = task_jobs
        timeline.append(item)
    return timeline
