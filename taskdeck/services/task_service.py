"""
Task service for TaskDeck.

Implements task CRUD with database persistence plus the ordering operations
exposed for tasks: placement on create, moves between lists, reordering a
list, and the filtered/paged task query.
"""

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from taskdeck.database import TaskListORM, TaskORM
from taskdeck.logging_config import get_logger
from taskdeck.models import Task, TaskCreate, TaskMove, TaskPage, TaskQuery, TaskUpdate
from taskdeck.services.converters import task_from_orm
from taskdeck.services.errors import ConflictError, NotFoundError, TaskDeckError
from taskdeck.services.ordering_service import OrderingService
from taskdeck.services.positioning import PositionPolicy
from taskdeck.services.scope_store import Scope, ScopeKind
from taskdeck.services.task_query import TaskQueryEngine
from taskdeck.utils.datetime_utils import to_naive_utc

logger = get_logger(__name__)


class TaskService:
    """
    Service layer for task operations.

    Field edits are applied directly; anything that changes ``position`` or
    ``list_id`` is delegated to the ordering service.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[PositionPolicy] = None,
        timezone_name: Optional[str] = None,
    ) -> None:
        """
        Initialize task service with database session.

        Args:
            session: Active async database session
            policy: Optional position constants for the ordering service
            timezone_name: Timezone defining calendar days for due buckets
        """
        self.session = session
        self.ordering = OrderingService(session, policy)
        self.store = self.ordering.store
        self.query_engine = TaskQueryEngine(session, timezone_name=timezone_name)

    # ==============================================================================
    # VALIDATION HELPERS
    # ==============================================================================

    async def _get_owned_list(self, user_id: UUID, list_id: UUID) -> TaskListORM:
        """
        Verify that a task list exists and belongs to ``user_id``.

        Raises:
            NotFoundError: If list does not exist or is owned by someone else
        """
        list_orm = await self.store.get_item(ScopeKind.LISTS, list_id)
        if list_orm is None or list_orm.user_id != str(user_id):
            raise NotFoundError(f"Task list with id {list_id} not found")
        return list_orm

    async def _get_owned_task(self, user_id: UUID, task_id: UUID) -> TaskORM:
        """
        Get a task by ID or raise an exception.

        Raises:
            NotFoundError: If task does not exist or is owned by someone else
        """
        task_orm = await self.store.get_item(ScopeKind.TASKS, task_id)
        if task_orm is None or task_orm.user_id != str(user_id):
            raise NotFoundError(f"Task with id {task_id} not found")
        return task_orm

    # ==============================================================================
    # CREATE OPERATIONS
    # ==============================================================================

    async def create_task(self, user_id: UUID, list_id: UUID, data: TaskCreate) -> Task:
        """
        Create a task in a list, after ``data.after_task_id`` or at the end.

        Args:
            user_id: Owner of the list
            list_id: UUID of the task list
            data: Validated creation payload

        Returns:
            Created Task instance

        Raises:
            NotFoundError: If list does not exist or belongs to someone else
            InvalidAnchorError: If ``after_task_id`` is not a task of this list
        """
        try:
            logger.debug(f"Creating task: title='{data.title}', list_id={list_id}")
            await self._get_owned_list(user_id, list_id)

            position = await self.ordering.place(
                Scope.tasks_of(list_id), anchor_id=data.after_task_id
            )

            now = datetime.utcnow()
            task_orm = TaskORM(
                id=str(uuid4()),
                user_id=str(user_id),
                list_id=str(list_id),
                title=data.title,
                description=data.description,
                status=data.status.value,
                priority=data.priority,
                tags=",".join(data.tags),
                due_date=to_naive_utc(data.due_date) if data.due_date else None,
                position=position,
                created_at=now,
                updated_at=now,
            )
            self.session.add(task_orm)
            await self.session.flush()

            logger.info(f"Created task: id={task_orm.id}, title='{data.title}', position={position}")
            return task_from_orm(task_orm)
        except TaskDeckError as e:
            logger.warning(f"Task creation rejected: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to create task: {e}", exc_info=True)
            raise

    # ==============================================================================
    # READ OPERATIONS
    # ==============================================================================

    async def get_task(self, user_id: UUID, task_id: UUID) -> Task:
        """
        Get a task by its ID.

        Raises:
            NotFoundError: If task does not exist or belongs to someone else
        """
        return task_from_orm(await self._get_owned_task(user_id, task_id))

    async def get_tasks_for_list(self, user_id: UUID, list_id: UUID) -> List[Task]:
        """
        Get all tasks of a list in position order.

        Raises:
            NotFoundError: If list does not exist or belongs to someone else
        """
        await self._get_owned_list(user_id, list_id)
        rows = await self.store.read_scope(Scope.tasks_of(list_id))
        return [task_from_orm(row) for row in rows]

    async def get_all_tasks(self, user_id: UUID) -> List[Task]:
        """
        Get every task of a user, grouped by list order then task order.

        Returns:
            List of Task instances
        """
        result = await self.session.execute(
            select(TaskORM)
            .join(TaskListORM, TaskORM.list_id == TaskListORM.id)
            .where(TaskORM.user_id == str(user_id))
            .order_by(TaskListORM.position, TaskORM.position, TaskORM.id)
        )
        return [task_from_orm(row) for row in result.scalars().all()]

    async def query_tasks(
        self,
        user_id: UUID,
        query: TaskQuery,
        now: Optional[datetime] = None
    ) -> TaskPage:
        """
        Filter, sort and paginate a user's tasks.

        Raises:
            NotFoundError: If ``query.list_id`` is not one of the user's lists
        """
        return await self.query_engine.query(user_id, query, now=now)

    # ==============================================================================
    # UPDATE OPERATIONS
    # ==============================================================================

    async def update_task(self, user_id: UUID, task_id: UUID, patch: TaskUpdate) -> Task:
        """
        Update a task's own fields (title, description, status, priority, tags, due date).

        Args:
            user_id: Owner of the task
            task_id: UUID of the task to update
            patch: Fields to change; only explicitly set fields are applied

        Returns:
            Updated Task instance

        Raises:
            NotFoundError: If task does not exist or belongs to someone else
            ValueError: If no fields are provided for update
            ConflictError: If the task was modified concurrently
        """
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise ValueError("At least one field must be provided")
        if changes.get("title", "") is None:
            raise ValueError("Title cannot be cleared")

        try:
            logger.debug(f"Updating task {task_id}: fields={sorted(changes)}")
            task_orm = await self._get_owned_task(user_id, task_id)

            for field, value in changes.items():
                if field == "status" and value is not None:
                    value = value.value
                elif field == "tags":
                    value = ",".join(value or [])
                elif field == "due_date" and value is not None:
                    value = to_naive_utc(value)
                elif field in ("status", "priority") and value is None:
                    continue
                setattr(task_orm, field, value)

            task_orm.updated_at = datetime.utcnow()
            await self.session.flush()

            logger.info(f"Updated task: id={task_id}, fields={sorted(changes)}")
            return task_from_orm(task_orm)
        except StaleDataError as e:
            raise ConflictError(f"Task {task_id} was modified concurrently") from e
        except NotFoundError as e:
            logger.warning(f"Failed to update task - {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to update task {task_id}: {e}", exc_info=True)
            raise

    # ==============================================================================
    # DELETE OPERATIONS
    # ==============================================================================

    async def delete_task(self, user_id: UUID, task_id: UUID) -> None:
        """
        Delete a task. Remaining siblings keep their positions.

        Raises:
            NotFoundError: If task does not exist or belongs to someone else
        """
        try:
            task_orm = await self._get_owned_task(user_id, task_id)
            task_title = task_orm.title
            await self.store.delete(ScopeKind.TASKS, task_id)
            logger.info(f"Deleted task: id={task_id}, title='{task_title}'")
        except NotFoundError as e:
            logger.warning(f"Failed to delete task - {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to delete task {task_id}: {e}", exc_info=True)
            raise

    # ==============================================================================
    # ORDERING OPERATIONS
    # ==============================================================================

    async def move_task(self, user_id: UUID, task_id: UUID, move: TaskMove) -> Task:
        """
        Move a task to another list (or within its list) after an anchor.

        Raises:
            NotFoundError: If task or destination list is missing or foreign
            InvalidAnchorError: If the anchor is not in the destination list
            ConflictError: If the destination was modified concurrently
        """
        try:
            task_orm = await self.ordering.move_task(
                user_id, task_id, move.target_list_id, move.after_task_id
            )
            return task_from_orm(task_orm)
        except TaskDeckError as e:
            logger.warning(f"Move of task {task_id} rejected: {e}")
            raise

    async def reorder_tasks(
        self,
        user_id: UUID,
        list_id: UUID,
        task_ids: Sequence[UUID]
    ) -> List[Task]:
        """
        Reorder a list's tasks to follow ``task_ids`` exactly.

        Raises:
            NotFoundError: If list does not exist or belongs to someone else
            InvalidOrderError: If ``task_ids`` is not a permutation of the list's tasks
        """
        await self._get_owned_list(user_id, list_id)
        rows = await self.ordering.reorder_by_ids(Scope.tasks_of(list_id), task_ids)
        return [task_from_orm(row) for row in rows]

    async def reorder_tasks_by_index(
        self,
        user_id: UUID,
        list_id: UUID,
        source_index: int,
        target_index: int
    ) -> List[Task]:
        """
        Move the task at ``source_index`` of a list to ``target_index``.

        Raises:
            NotFoundError: If list does not exist or belongs to someone else
            InvalidOrderError: If an index is out of range
        """
        await self._get_owned_list(user_id, list_id)
        rows = await self.ordering.reorder_by_index(
            Scope.tasks_of(list_id), source_index, target_index
        )
        return [task_from_orm(row) for row in rows]
