"""
Database layer for TaskDeck.

Provides SQLAlchemy ORM models, async engine/session management, and database
initialization. Lists and tasks carry a fractional ``position`` column and a
``version`` counter used for optimistic concurrency on position writes;
the owner of each ordering scope (a user for lists, a list for tasks) carries
a ``scope_version`` that every write to the scope bumps.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from taskdeck.logging_config import get_logger

logger = get_logger(__name__)

_DEFAULT_DB_PATH = Path.home() / ".taskdeck" / "taskdeck.db"
_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class UserORM(Base):
    """
    SQLAlchemy ORM model for users.

    Only the ownership record lives here; credentials are handled by the
    authentication collaborator.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # Bumped by every position write to this user's lists
    scope_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lists: Mapped[list["TaskListORM"]] = relationship(
        "TaskListORM",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<UserORM(id={self.id}, email={self.email})>"


class TaskListORM(Base):
    """
    SQLAlchemy ORM model for task lists.

    A list's ordering scope is "all lists of its user".
    """
    __tablename__ = "task_lists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # Bumped by every position write to this list's tasks
    scope_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    user: Mapped["UserORM"] = relationship("UserORM", back_populates="lists")

    # Relationship to tasks
    tasks: Mapped[list["TaskORM"]] = relationship(
        "TaskORM",
        back_populates="task_list",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<TaskListORM(id={self.id}, title={self.title}, position={self.position})>"


class TaskORM(Base):
    """
    SQLAlchemy ORM model for tasks.

    A task's ordering scope is "all tasks of its list". ``tags`` is stored
    comma-joined; ``due_date`` is naive UTC.
    """
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    list_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("task_lists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="todo", index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    position: Mapped[float] = mapped_column(Float, nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationship to task list
    task_list: Mapped["TaskListORM"] = relationship("TaskListORM", back_populates="tasks")

    __mapper_args__ = {"version_id_col": version}

    @property
    def tag_list(self) -> list[str]:
        """Tags split back into a list."""
        return [t for t in (self.tags or "").split(",") if t]

    def __repr__(self) -> str:
        return f"<TaskORM(id={self.id}, title={self.title}, position={self.position})>"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """Turn on FK enforcement so ON DELETE CASCADE applies in SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """
    Manages database connections and session lifecycle.

    Handles async engine creation, session management, and database
    initialization for both production and testing scenarios.
    """

    def __init__(self, database_url: str = _DEFAULT_DB_URL):
        """
        Initialize database manager with connection URL.

        Args:
            database_url: SQLAlchemy database URL (default: local SQLite file)
        """
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self) -> None:
        """
        Initialize the database engine and create tables.

        Creates the async engine, session maker, and all tables defined
        in the Base metadata.
        """
        try:
            logger.info(f"Initializing database: {self.database_url}")
            if self.database_url.startswith("sqlite") and ":memory:" not in self.database_url:
                db_path = self.database_url.split("///", 1)[-1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            self.engine = create_async_engine(
                self.database_url,
                echo=False,  # Set to True for SQL query logging
            )

            if self.engine.dialect.name == "sqlite":
                event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

            self.session_maker = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    async def close(self) -> None:
        """
        Close the database engine and cleanup resources.
        """
        if self.engine:
            logger.info("Closing database connection")
            try:
                await self.engine.dispose()
                self.engine = None
                self.session_maker = None
                logger.info("Database connection closed successfully")
            except Exception as e:
                logger.error(f"Error closing database connection: {e}", exc_info=True)
                raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic transaction management.

        Everything done inside the block is one transaction: it commits on
        normal exit and rolls back on any exception, so a failed position
        batch never leaves a partially renumbered scope behind.

        Yields:
            AsyncSession for database operations

        Example:
            async with db_manager.get_session() as session:
                service = TaskService(session)
                await service.move_task(user_id, task_id, move)
        """
        if not self.session_maker:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")

        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                logger.error(f"Database session error, rolling back: {e}", exc_info=True)
                await session.rollback()
                raise


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


def get_database_manager(database_url: str = _DEFAULT_DB_URL) -> DatabaseManager:
    """
    Get or create the global database manager instance.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)
    return _db_manager


async def init_database(database_url: str = _DEFAULT_DB_URL) -> DatabaseManager:
    """
    Initialize the database and return the manager instance.

    Convenience function for application startup.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Initialized DatabaseManager instance
    """
    db_manager = get_database_manager(database_url)
    await db_manager.initialize()
    return db_manager
