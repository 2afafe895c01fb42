"""
List service for TaskDeck.

Provides CRUD operations for a user's task lists. Lists are kept in a
per-user order; creation and reordering go through the ordering service so
positions are only ever written in validated batches.
"""

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdeck.database import TaskListORM, TaskORM, UserORM
from taskdeck.logging_config import get_logger
from taskdeck.models import ListCreate, ListReorder, ListUpdate, TaskList, TaskStatus
from taskdeck.services.converters import list_from_orm
from taskdeck.services.errors import NotFoundError, TaskDeckError
from taskdeck.services.ordering_service import OrderingService
from taskdeck.services.positioning import PositionPolicy
from taskdeck.services.scope_store import Scope, ScopeKind

logger = get_logger(__name__)


class ListService:
    """
    Service layer for task list management.

    Handles creation, retrieval, renaming, reordering and deletion of the
    lists owned by a user.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[PositionPolicy] = None
    ) -> None:
        """
        Initialize the list service.

        Args:
            session: Active database session for operations
            policy: Optional position constants for the ordering service
        """
        self.session = session
        self.ordering = OrderingService(session, policy)
        self.store = self.ordering.store

    async def _verify_user_exists(self, user_id: UUID) -> None:
        result = await self.session.execute(select(UserORM.id).where(UserORM.id == str(user_id)))
        if result.scalar_one_or_none() is None:
            raise NotFoundError(f"User with id {user_id} not found")

    async def _get_owned_list(self, user_id: UUID, list_id: UUID) -> TaskListORM:
        """
        Get a list owned by ``user_id`` or raise.

        Raises:
            NotFoundError: If the list does not exist or belongs to someone else
        """
        list_orm = await self.store.get_item(ScopeKind.LISTS, list_id)
        if list_orm is None or list_orm.user_id != str(user_id):
            raise NotFoundError(f"Task list with id {list_id} not found")
        return list_orm

    async def create_list(self, user_id: UUID, data: ListCreate) -> TaskList:
        """
        Create a new task list, after ``data.after_list_id`` or at the end.

        Args:
            user_id: Owner of the new list
            data: Validated creation payload

        Returns:
            Created TaskList model

        Raises:
            NotFoundError: If the user does not exist
            InvalidAnchorError: If ``after_list_id`` is not one of the user's lists
        """
        try:
            logger.debug(f"Creating list: user_id={user_id}, title='{data.title}'")
            await self._verify_user_exists(user_id)

            position = await self.ordering.place(
                Scope.lists_of(user_id), anchor_id=data.after_list_id
            )

            now = datetime.utcnow()
            list_orm = TaskListORM(
                id=str(uuid4()),
                user_id=str(user_id),
                title=data.title,
                position=position,
                created_at=now,
                updated_at=now,
            )
            self.session.add(list_orm)
            await self.session.flush()

            logger.info(f"Created list: id={list_orm.id}, title='{data.title}', position={position}")
            return list_from_orm(list_orm)
        except TaskDeckError as e:
            logger.warning(f"List creation rejected: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to create list: {e}", exc_info=True)
            raise

    async def get_lists(self, user_id: UUID) -> List[TaskList]:
        """
        Retrieve all of a user's lists in position order.

        Returns:
            List of TaskList models with counts populated
        """
        rows = await self.store.read_scope(Scope.lists_of(user_id))
        return [await self._with_counts(row) for row in rows]

    async def get_list(self, user_id: UUID, list_id: UUID) -> TaskList:
        """
        Retrieve one of a user's lists.

        Raises:
            NotFoundError: If the list does not exist or belongs to someone else
        """
        list_orm = await self._get_owned_list(user_id, list_id)
        return await self._with_counts(list_orm)

    async def update_list(self, user_id: UUID, list_id: UUID, data: ListUpdate) -> TaskList:
        """
        Rename a list.

        Raises:
            NotFoundError: If the list does not exist or belongs to someone else
        """
        try:
            list_orm = await self._get_owned_list(user_id, list_id)
            old_title = list_orm.title
            list_orm.title = data.title
            list_orm.updated_at = datetime.utcnow()
            await self.session.flush()

            logger.info(f"Updated list: id={list_id}, '{old_title}' -> '{data.title}'")
            return await self._with_counts(list_orm)
        except NotFoundError as e:
            logger.warning(f"Update failed - {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to update list {list_id}: {e}", exc_info=True)
            raise

    async def delete_list(self, user_id: UUID, list_id: UUID) -> int:
        """
        Delete a list and all its tasks (cascade).

        Other scopes are not renumbered.

        Returns:
            Number of tasks deleted with the list

        Raises:
            NotFoundError: If the list does not exist or belongs to someone else
        """
        try:
            logger.debug(f"Deleting list {list_id}")
            list_orm = await self._get_owned_list(user_id, list_id)
            list_title = list_orm.title

            deleted_tasks = await self.store.cascade_delete_children(list_id)
            await self.store.delete(ScopeKind.LISTS, list_id)

            logger.info(f"Deleted list: id={list_id}, title='{list_title}', tasks={deleted_tasks}")
            return deleted_tasks
        except NotFoundError as e:
            logger.warning(f"Delete failed - {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to delete list {list_id}: {e}", exc_info=True)
            raise

    async def reorder_lists(self, user_id: UUID, reorder: ListReorder) -> List[TaskList]:
        """
        Move the list at ``source_index`` to ``target_index``.

        Returns:
            The user's lists in their new order

        Raises:
            InvalidOrderError: If an index is out of range
        """
        rows = await self.ordering.reorder_by_index(
            Scope.lists_of(user_id), reorder.source_index, reorder.target_index
        )
        return [await self._with_counts(row) for row in rows]

    async def reorder_lists_by_ids(self, user_id: UUID, list_ids: Sequence[UUID]) -> List[TaskList]:
        """
        Reorder a user's lists to follow ``list_ids`` exactly.

        Raises:
            InvalidOrderError: If ``list_ids`` is not a permutation of the user's lists
        """
        rows = await self.ordering.reorder_by_ids(Scope.lists_of(user_id), list_ids)
        return [await self._with_counts(row) for row in rows]

    async def _with_counts(self, list_orm: TaskListORM) -> TaskList:
        """
        Convert TaskListORM to Pydantic with counts populated.

        Args:
            list_orm: SQLAlchemy task list instance

        Returns:
            Pydantic TaskList with counts
        """
        task_list = list_from_orm(list_orm)
        result = await self.session.execute(
            select(
                func.count(TaskORM.id),
                func.coalesce(
                    func.sum(case((TaskORM.status == TaskStatus.DONE.value, 1), else_=0)), 0
                ),
            ).where(TaskORM.list_id == list_orm.id)
        )
        task_count, done_count = result.one()
        task_list.update_counts(task_count, done_count)
        return task_list
