"""
Task query engine for TaskDeck.

Produces a deterministic, filtered, sorted and paged view of a user's tasks
(optionally one list's tasks). Read-only: the engine never writes and never
caches positions between calls.
"""

from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdeck.database import TaskListORM, TaskORM
from taskdeck.logging_config import get_logger
from taskdeck.models import DueBucket, Task, TaskPage, TaskQuery, TaskStatus
from taskdeck.services.converters import task_from_orm
from taskdeck.services.errors import NotFoundError
from taskdeck.utils.datetime_utils import local_day_window, to_naive_utc

logger = get_logger(__name__)


# ==============================================================================
# FILTERS
# ==============================================================================


def _matches_search(task: Task, needle: str) -> bool:
    needle = needle.casefold()
    if needle in task.title.casefold():
        return True
    return task.description is not None and needle in task.description.casefold()


def build_due_filter(
    bucket: DueBucket,
    now: datetime,
    timezone_name: Optional[str] = None
) -> Callable[[Task], bool]:
    """
    Build a predicate for a due-date bucket.

    Args:
        bucket: ``today``, ``overdue`` or ``week``
        now: Current instant
        timezone_name: Timezone defining "today"; None means server local

    Returns:
        Predicate over tasks
    """
    now = to_naive_utc(now)

    if bucket == DueBucket.OVERDUE:
        return lambda task: (
            task.due_date is not None
            and to_naive_utc(task.due_date) < now
            and task.status != TaskStatus.DONE
        )

    days = 1 if bucket == DueBucket.TODAY else 7
    start, end = local_day_window(now, days=days, timezone_name=timezone_name)
    return lambda task: (
        task.due_date is not None and start <= to_naive_utc(task.due_date) < end
    )


def filter_tasks(
    tasks: Sequence[Task],
    query: TaskQuery,
    now: datetime,
    timezone_name: Optional[str] = None
) -> List[Task]:
    """Apply every filter in ``query`` conjunctively."""
    predicates: List[Callable[[Task], bool]] = []

    if query.list_id is not None:
        predicates.append(lambda task: task.list_id == query.list_id)
    if query.search:
        predicates.append(lambda task: _matches_search(task, query.search))
    if query.status is not None:
        predicates.append(lambda task: task.status == query.status)
    if query.priority is not None:
        predicates.append(lambda task: task.priority == query.priority)
    if query.tags:
        wanted = set(query.tags)
        predicates.append(lambda task: wanted.issubset(task.tags))
    if query.due is not None:
        predicates.append(build_due_filter(query.due, now, timezone_name))

    return [task for task in tasks if all(predicate(task) for predicate in predicates)]


# ==============================================================================
# SORTING / PAGING
# ==============================================================================


def _sort_value(task: Task, field: str) -> Any:
    value = getattr(task, field)
    if isinstance(value, TaskStatus):
        return value.value
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


def sort_tasks(tasks: Sequence[Task], query: TaskQuery) -> List[Task]:
    """
    Order tasks by the query's sort keys.

    Keys are applied as successive stable sorts from least to most
    significant. Missing values always go last, whatever the direction.
    Position (then ID) is the final tiebreak.
    """
    ordered = sorted(tasks, key=lambda task: (task.position, str(task.id)))

    for field, descending in reversed(query.sort_keys()):
        present = [task for task in ordered if getattr(task, field) is not None]
        absent = [task for task in ordered if getattr(task, field) is None]
        present.sort(key=lambda task: _sort_value(task, field), reverse=descending)
        ordered = present + absent

    return ordered


def run_query(
    tasks: Sequence[Task],
    query: TaskQuery,
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None
) -> TaskPage:
    """
    Filter, sort and paginate an in-memory task collection.

    Args:
        tasks: Candidate tasks (already restricted to the caller's scope)
        query: Filter/sort/page parameters
        now: Reference instant for due buckets (default: current UTC time)
        timezone_name: Timezone defining calendar days

    Returns:
        TaskPage with the requested page and the total filtered count
    """
    if now is None:
        now = datetime.utcnow()

    matched = filter_tasks(tasks, query, now, timezone_name)
    ordered = sort_tasks(matched, query)

    start = (query.page - 1) * query.page_size
    items = ordered[start:start + query.page_size]

    return TaskPage(
        items=items,
        page=query.page,
        page_size=query.page_size,
        total=len(ordered),
    )


class TaskQueryEngine:
    """
    Loads a scope of tasks from the database and runs a query over it.

    Equality filters are pushed into SQL to narrow the scan; the full filter
    set is then applied in Python so semantics are identical across backends.
    """

    def __init__(
        self,
        session: AsyncSession,
        timezone_name: Optional[str] = None
    ) -> None:
        """
        Initialize the query engine.

        Args:
            session: Active database session
            timezone_name: Timezone defining calendar days for due buckets
        """
        self.session = session
        self.timezone_name = timezone_name

    async def query(
        self,
        user_id: Any,
        query: TaskQuery,
        now: Optional[datetime] = None
    ) -> TaskPage:
        """
        Run ``query`` over the user's tasks.

        Args:
            user_id: Owner whose tasks are searched
            query: Filter/sort/page parameters
            now: Reference instant for due buckets

        Returns:
            TaskPage

        Raises:
            NotFoundError: If ``query.list_id`` is not a list of this user
        """
        statement = select(TaskORM).where(TaskORM.user_id == str(user_id))

        if query.list_id is not None:
            result = await self.session.execute(
                select(TaskListORM.id).where(
                    TaskListORM.id == str(query.list_id),
                    TaskListORM.user_id == str(user_id),
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"Task list with id {query.list_id} not found")
            statement = statement.where(TaskORM.list_id == str(query.list_id))

        if query.status is not None:
            statement = statement.where(TaskORM.status == query.status.value)
        if query.priority is not None:
            statement = statement.where(TaskORM.priority == query.priority)

        result = await self.session.execute(statement.order_by(TaskORM.position, TaskORM.id))
        tasks = [task_from_orm(row) for row in result.scalars().all()]

        page = run_query(tasks, query, now=now, timezone_name=self.timezone_name)
        logger.debug(
            f"Task query for user {user_id}: scanned={len(tasks)}, "
            f"total={page.total}, page={page.page}, page_size={page.page_size}"
        )
        return page
