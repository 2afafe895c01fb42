"""
Ordering service for TaskDeck.

Orchestrates every write to the ``position`` column: placement of new items,
bulk reorders of a scope, and moves of a task into another (or the same)
list. Each operation validates first and then issues a single position
batch through ``ScopeStore``; precision exhaustion is resolved here by
rebalancing the affected scope inside that same batch. Every write first
claims its scope, so two writers planning against the same snapshot cannot
both commit.
"""

from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from taskdeck.database import TaskORM
from taskdeck.logging_config import get_logger
from taskdeck.services.errors import (
    InvalidOrderError,
    NotFoundError,
    PrecisionExhaustedError,
)
from taskdeck.services.positioning import (
    DEFAULT_POLICY,
    PositionPolicy,
    Positioned,
    allocate,
    rebalance,
    spaced_positions,
)
from taskdeck.services.scope_store import FieldWrite, Scope, ScopeKind, ScopeRow, ScopeStore

logger = get_logger(__name__)


class _Slot(NamedTuple):
    """A sibling's ID with a prospective position, not yet written."""

    id: Any
    position: float


class OrderingService:
    """
    Reorder/move engine for lists and tasks.

    The only component that writes positions. It never commits; the
    caller's session transaction makes each operation all-or-nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: Optional[PositionPolicy] = None
    ) -> None:
        """
        Initialize the ordering service.

        Args:
            session: Active database session for operations
            policy: Position constants (defaults to the module defaults)
        """
        self.session = session
        self.store = ScopeStore(session)
        self.policy = policy or DEFAULT_POLICY
        self.rebalance_count = 0

    # ==============================================================================
    # ALLOCATION HELPERS
    # ==============================================================================

    def _plan_position(
        self,
        siblings: Sequence[Positioned],
        anchor_id: Optional[Any],
    ) -> Tuple[float, List[FieldWrite]]:
        """
        Allocate a position, rebalancing the siblings once if required.

        Returns:
            Tuple of (new position, sibling writes needed before it is valid)

        Raises:
            InvalidAnchorError: If the anchor is not among ``siblings``
        """
        try:
            return allocate(siblings, anchor_id, self.policy), []
        except PrecisionExhaustedError as e:
            logger.info(f"Precision exhausted, rebalancing {len(siblings)} siblings: {e}")

        mapping = rebalance(siblings, self.policy)
        self.rebalance_count += 1
        rebalanced = [_Slot(sibling.id, mapping[sibling.id]) for sibling in siblings]
        position = allocate(rebalanced, anchor_id, self.policy)
        writes = [FieldWrite(item_id, "position", value) for item_id, value in mapping.items()]
        return position, writes

    async def place(
        self,
        scope: Scope,
        anchor_id: Optional[Any] = None,
        exclude_id: Optional[Any] = None,
    ) -> float:
        """
        Compute the position of a new item about to be inserted into a scope.

        If the scope must be rebalanced first, the rebalance is written here
        as part of the caller's transaction.

        Args:
            scope: Target scope
            anchor_id: Item to place after; None appends to the end
            exclude_id: Optional member to ignore

        Returns:
            Position for the new item

        Raises:
            InvalidAnchorError: If ``anchor_id`` is not a member of ``scope``
            ConflictError: If another writer changed the scope concurrently
        """
        siblings = await self.store.read_scope(scope, exclude_id=exclude_id, lock=True)
        position, writes = self._plan_position(siblings, anchor_id)
        await self.store.claim_scope(scope)
        if writes:
            await self.store.write_batch(scope.kind, writes)
        logger.debug(
            f"Placed item in {scope.kind.value} scope {scope.owner_id}: "
            f"anchor={anchor_id}, position={position}"
        )
        return position

    async def _write_order(self, scope: Scope, ordered: Sequence[ScopeRow]) -> None:
        positions = spaced_positions(len(ordered), self.policy)
        await self.store.claim_scope(scope)
        await self.store.write_batch(
            scope.kind,
            [FieldWrite(row.id, "position", position) for row, position in zip(ordered, positions)],
        )

    # ==============================================================================
    # BULK REORDER
    # ==============================================================================

    async def reorder_by_index(
        self,
        scope: Scope,
        source_index: int,
        target_index: int,
    ) -> List[ScopeRow]:
        """
        Move the member at ``source_index`` to ``target_index`` and respace the scope.

        Args:
            scope: Scope to reorder
            source_index: Current index of the member to move
            target_index: Index it should occupy afterwards

        Returns:
            Members in their new order

        Raises:
            InvalidOrderError: If either index is outside ``[0, len(scope))``
            ConflictError: If another writer changed the scope concurrently
        """
        members = await self.store.read_scope(scope, lock=True)
        count = len(members)
        if not (0 <= source_index < count and 0 <= target_index < count):
            logger.warning(
                f"Reorder rejected for {scope.kind.value} scope {scope.owner_id}: "
                f"source={source_index}, target={target_index}, size={count}"
            )
            raise InvalidOrderError(
                f"Indices ({source_index}, {target_index}) out of range for {count} items"
            )

        ordered = list(members)
        moved = ordered.pop(source_index)
        ordered.insert(target_index, moved)

        await self._write_order(scope, ordered)
        logger.info(
            f"Reordered {scope.kind.value} scope {scope.owner_id}: "
            f"{source_index} -> {target_index}"
        )
        return ordered

    async def reorder_by_ids(self, scope: Scope, ordered_ids: Sequence[Any]) -> List[ScopeRow]:
        """
        Reassign positions so the scope follows ``ordered_ids`` exactly.

        Args:
            scope: Scope to reorder
            ordered_ids: Every member ID of the scope, in the desired order

        Returns:
            Members in their new order

        Raises:
            InvalidOrderError: If ``ordered_ids`` has duplicates, misses a
                               member, or names an item outside the scope
        """
        members = await self.store.read_scope(scope, lock=True)
        by_id = {row.id: row for row in members}
        requested = [str(item_id) for item_id in ordered_ids]

        if len(requested) != len(set(requested)):
            raise InvalidOrderError("Reorder payload contains duplicate IDs")
        foreign = set(requested) - by_id.keys()
        if foreign:
            raise InvalidOrderError(f"Reorder payload contains IDs outside the scope: {sorted(foreign)}")
        missing = by_id.keys() - set(requested)
        if missing:
            raise InvalidOrderError(f"Reorder payload is missing scope members: {sorted(missing)}")

        ordered = [by_id[item_id] for item_id in requested]
        await self._write_order(scope, ordered)
        logger.info(f"Reordered {scope.kind.value} scope {scope.owner_id} by explicit IDs ({len(ordered)} items)")
        return ordered

    # ==============================================================================
    # MOVE
    # ==============================================================================

    async def move_task(
        self,
        user_id: Any,
        task_id: Any,
        target_list_id: Any,
        after_task_id: Optional[Any] = None,
    ) -> TaskORM:
        """
        Move a task into ``target_list_id`` after ``after_task_id`` (or to the end).

        Only the moved task's ``list_id`` and ``position`` change, written
        together in one batch; siblings are touched only when the destination
        has to be rebalanced, and then in that same batch.

        Args:
            user_id: Owner performing the move
            task_id: Task to move
            target_list_id: Destination list (may be the task's current list)
            after_task_id: Destination member to place after; None appends

        Returns:
            The updated task row

        Raises:
            NotFoundError: If the task or destination list does not exist or
                           belongs to another user
            InvalidAnchorError: If the anchor is not in the destination list
            ConflictError: If another writer changed the destination concurrently
        """
        task = await self.store.get_item(ScopeKind.TASKS, task_id)
        if task is None or task.user_id != str(user_id):
            raise NotFoundError(f"Task with id {task_id} not found")

        target_list = await self.store.get_item(ScopeKind.LISTS, target_list_id)
        if target_list is None or target_list.user_id != str(user_id):
            raise NotFoundError(f"Task list with id {target_list_id} not found")

        scope = Scope.tasks_of(target_list.id)
        siblings = await self.store.read_scope(scope, exclude_id=task.id, lock=True)
        position, writes = self._plan_position(siblings, after_task_id)

        source_list_id = task.list_id
        writes.extend([
            FieldWrite(task.id, "list_id", target_list.id),
            FieldWrite(task.id, "position", position),
        ])
        await self.store.claim_scope(scope)
        await self.store.write_batch(ScopeKind.TASKS, writes)

        logger.info(
            f"Moved task {task.id} from list {source_list_id} to {target_list.id} "
            f"after={after_task_id}, position={position}"
        )
        return task
