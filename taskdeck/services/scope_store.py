"""
Scope storage for ordered lists and tasks.

Reads a scope's members in position order and applies batches of position
(and list-membership) writes through the caller's session. A batch is
validated completely before the first attribute is touched and flushed in a
single round-trip; if the flush fails the session transaction is rolled
back by ``DatabaseManager.get_session``, so callers never observe a
partially applied batch. Stale rows (another writer bumped ``version``)
surface as ``ConflictError``, as does a scope whose owner's
``scope_version`` moved between a locked read and ``claim_scope``.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple, Type, Union

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from taskdeck.database import TaskListORM, TaskORM, UserORM
from taskdeck.logging_config import get_logger
from taskdeck.services.errors import ConflictError, NotFoundError

logger = get_logger(__name__)


class ScopeKind(str, Enum):
    """Which kind of item a scope orders."""

    LISTS = "lists"
    TASKS = "tasks"


class Scope(BaseModel):
    """
    A set of siblings sharing one total order.

    ``owner_id`` is the user ID for a LISTS scope and the list ID for a
    TASKS scope.
    """

    kind: ScopeKind
    owner_id: str

    @classmethod
    def lists_of(cls, user_id: Any) -> "Scope":
        return cls(kind=ScopeKind.LISTS, owner_id=str(user_id))

    @classmethod
    def tasks_of(cls, list_id: Any) -> "Scope":
        return cls(kind=ScopeKind.TASKS, owner_id=str(list_id))


class FieldWrite(NamedTuple):
    """One ``(item_id, field, value)`` write inside a batch."""

    item_id: str
    field: str
    value: Any


ScopeRow = Union[TaskListORM, TaskORM]

_MODELS: Dict[ScopeKind, Type[ScopeRow]] = {
    ScopeKind.LISTS: TaskListORM,
    ScopeKind.TASKS: TaskORM,
}

# Rows whose scope_version guards each scope
_OWNERS: Dict[ScopeKind, Type[Union[UserORM, TaskListORM]]] = {
    ScopeKind.LISTS: UserORM,
    ScopeKind.TASKS: TaskListORM,
}

# Only the ordering engine writes through batches, and only these columns
_WRITABLE_FIELDS = {
    ScopeKind.LISTS: frozenset({"position"}),
    ScopeKind.TASKS: frozenset({"position", "list_id"}),
}


class ScopeStore:
    """
    Storage collaborator for ordered scopes.

    Wraps an active AsyncSession; it never commits, leaving the transaction
    boundary to the session owner.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the store.

        Args:
            session: Active database session for operations
        """
        self.session = session
        self._seen_versions: Dict[Tuple[ScopeKind, str], Optional[int]] = {}

    def _scope_statement(self, scope: Scope):
        model = _MODELS[scope.kind]
        owner_column = model.user_id if scope.kind == ScopeKind.LISTS else model.list_id
        return (
            select(model)
            .where(owner_column == scope.owner_id)
            .order_by(model.position, model.created_at, model.id)
        )

    async def read_scope(
        self,
        scope: Scope,
        exclude_id: Optional[Any] = None,
        lock: bool = False,
    ) -> List[ScopeRow]:
        """
        Read a scope's members in ascending position order.

        Args:
            scope: Scope to read
            exclude_id: Optional member to leave out (the item being placed)
            lock: Read for writing: snapshot the owner's ``scope_version``
                  for ``claim_scope`` and take row locks (SELECT ... FOR
                  UPDATE) where the backend supports them

        Returns:
            Ordered list of ORM rows
        """
        if lock:
            await self._read_scope_version(scope)

        query = self._scope_statement(scope)
        if exclude_id is not None:
            model = _MODELS[scope.kind]
            query = query.where(model.id != str(exclude_id))
        if lock:
            query = query.with_for_update()

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _read_scope_version(self, scope: Scope) -> None:
        owner = _OWNERS[scope.kind]
        result = await self.session.execute(
            select(owner.scope_version)
            .where(owner.id == scope.owner_id)
            .with_for_update()
        )
        self._seen_versions[(scope.kind, scope.owner_id)] = result.scalar_one_or_none()

    async def claim_scope(self, scope: Scope) -> None:
        """
        Bump the scope owner's ``scope_version`` inside the current transaction.

        The bump only matches if the version still equals the one observed by
        the last ``read_scope(scope, lock=True)``, so two writers that planned
        against the same snapshot cannot both commit. Backends with row locks
        already serialize them at read time; on SQLite the losing writer's
        UPDATE matches no row.

        Raises:
            RuntimeError: If the scope was not read with ``lock=True`` first
            NotFoundError: If the scope owner does not exist
            ConflictError: If another writer changed the scope since it was read
        """
        key = (scope.kind, scope.owner_id)
        if key not in self._seen_versions:
            raise RuntimeError(f"Scope {scope.kind.value}/{scope.owner_id} must be read with lock=True before writing")
        seen = self._seen_versions[key]
        if seen is None:
            raise NotFoundError(f"Owner {scope.owner_id} of {scope.kind.value} scope not found")

        owner = _OWNERS[scope.kind]
        result = await self.session.execute(
            update(owner)
            .where(owner.id == scope.owner_id, owner.scope_version == seen)
            .values(scope_version=owner.scope_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Concurrent write detected on {scope.kind.value} scope {scope.owner_id}: "
                f"expected scope_version {seen}"
            )
            raise ConflictError(f"{scope.kind.value.capitalize()} of {scope.owner_id} were modified concurrently")
        self._seen_versions[key] = seen + 1

    async def get_item(self, kind: ScopeKind, item_id: Any) -> Optional[ScopeRow]:
        """Fetch a single list or task row by ID."""
        model = _MODELS[kind]
        result = await self.session.execute(select(model).where(model.id == str(item_id)))
        return result.scalar_one_or_none()

    async def write_batch(self, kind: ScopeKind, writes: Iterable[FieldWrite]) -> int:
        """
        Apply a batch of field writes atomically.

        Args:
            kind: Which table the writes target
            writes: ``FieldWrite`` triples

        Returns:
            Number of rows touched

        Raises:
            ValueError: If a write targets a field outside the ordering columns
            NotFoundError: If a targeted row does not exist
            ConflictError: If another writer modified a targeted row
        """
        writes = list(writes)
        if not writes:
            return 0

        allowed = _WRITABLE_FIELDS[kind]
        for write in writes:
            if write.field not in allowed:
                raise ValueError(f"Field '{write.field}' cannot be written by a {kind.value} batch")

        model = _MODELS[kind]
        item_ids = {str(write.item_id) for write in writes}
        result = await self.session.execute(select(model).where(model.id.in_(item_ids)))
        rows = {row.id: row for row in result.scalars().all()}

        missing = item_ids - rows.keys()
        if missing:
            raise NotFoundError(f"Cannot write batch, {kind.value} not found: {sorted(missing)}")

        for write in writes:
            setattr(rows[str(write.item_id)], write.field, write.value)

        try:
            await self.session.flush()
        except StaleDataError as e:
            logger.warning(f"Concurrent write detected on {kind.value} batch: {e}")
            raise ConflictError(f"{kind.value.capitalize()} were modified concurrently") from e

        logger.debug(f"Applied {len(writes)} writes to {len(rows)} {kind.value}")
        return len(rows)

    async def delete(self, kind: ScopeKind, item_id: Any) -> None:
        """
        Delete a single list or task row.

        Raises:
            NotFoundError: If the row does not exist
            ConflictError: If another writer modified the row
        """
        row = await self.get_item(kind, item_id)
        if row is None:
            raise NotFoundError(f"{kind.value.capitalize()[:-1]} with id {item_id} not found")

        await self.session.delete(row)
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConflictError(f"{kind.value.capitalize()[:-1]} {item_id} was modified concurrently") from e

    async def cascade_delete_children(self, list_id: Any) -> int:
        """
        Delete every task of a list.

        Args:
            list_id: Parent list ID

        Returns:
            Number of tasks deleted
        """
        result = await self.session.execute(
            delete(TaskORM)
            .where(TaskORM.list_id == str(list_id))
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount
