"""
Application context for TaskDeck.

Wires configuration, logging and the database together and hands out
services bound to a single transaction. A routing layer (HTTP, CLI, tests)
opens one service context per request:

    deck = TaskDeck()
    await deck.start()
    async with deck.with_task_service() as task_service:
        await task_service.move_task(user_id, task_id, move)
    await deck.stop()
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from taskdeck.config import Config
from taskdeck.database import DatabaseManager
from taskdeck.logging_config import get_logger, setup_logging
from taskdeck.models import MAX_PAGE_SIZE, TaskQuery
from taskdeck.services.list_service import ListService
from taskdeck.services.positioning import PositionPolicy
from taskdeck.services.task_service import TaskService
from taskdeck.services.user_service import UserService

logger = get_logger(__name__)


class TaskDeck:
    """Owns the database manager and the configured service settings."""

    def __init__(self, config: Optional[Config] = None) -> None:
        """
        Initialize the application context.

        Args:
            config: Configuration to use (defaults to ~/.taskdeck/config.ini)
        """
        self.config = config or Config()
        self.policy = PositionPolicy.from_config(self.config)
        self.timezone_name = self.config.get_display_config()['timezone']
        self._query_config = self.config.get_query_config()
        self._db_manager: Optional[DatabaseManager] = None

    async def start(self, setup_logs: bool = False, console: bool = False) -> None:
        """
        Initialize the database (and optionally logging).

        Args:
            setup_logs: Configure the rotating log file before anything else
            console: Also log to stderr when ``setup_logs`` is set
        """
        if setup_logs:
            setup_logging(console=console)

        database_url = self.config.get_database_config()['url']
        self._db_manager = DatabaseManager(database_url)
        await self._db_manager.initialize()
        logger.info(
            f"TaskDeck ready: gap={self.policy.gap}, timezone={self.timezone_name or 'local'}"
        )

    async def stop(self) -> None:
        """Dispose of the database engine."""
        if self._db_manager is not None:
            await self._db_manager.close()
            self._db_manager = None
        logger.info("TaskDeck stopped")

    @property
    def db_manager(self) -> DatabaseManager:
        if self._db_manager is None:
            raise RuntimeError("TaskDeck not started. Call start() first.")
        return self._db_manager

    def build_query(self, **params: Any) -> TaskQuery:
        """
        Build a TaskQuery, applying the configured page-size defaults.

        Args:
            **params: TaskQuery fields, e.g. from query-string parameters

        Returns:
            Validated TaskQuery

        Raises:
            pydantic.ValidationError: If a parameter is invalid
        """
        max_page_size = min(self._query_config['max_page_size'], MAX_PAGE_SIZE)
        page_size = params.pop('page_size', None)
        if page_size is None:
            page_size = self._query_config['default_page_size']
        params['page_size'] = min(int(page_size), max_page_size)
        return TaskQuery(**params)

    @asynccontextmanager
    async def with_task_service(self):
        """Context manager for TaskService with database session.

        Yields:
            TaskService instance with active database session
        """
        async with self.db_manager.get_session() as session:
            yield TaskService(session, self.policy, self.timezone_name)

    @asynccontextmanager
    async def with_list_service(self):
        """Context manager for ListService with database session.

        Yields:
            ListService instance with active database session
        """
        async with self.db_manager.get_session() as session:
            yield ListService(session, self.policy)

    @asynccontextmanager
    async def with_user_service(self):
        """Context manager for UserService with database session."""
        async with self.db_manager.get_session() as session:
            yield UserService(session)

    def settings(self) -> Dict[str, Any]:
        """Effective settings, for diagnostics."""
        return {
            'position': self.policy.model_dump(),
            'timezone': self.timezone_name,
            'query': dict(self._query_config),
        }
