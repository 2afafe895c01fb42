"""
Tests for the TaskDeck application context.

Runs the full stack (config -> database -> services) against a temporary
SQLite file, including rollback of a failed operation.
"""

import pytest
import pytest_asyncio

from taskdeck.app import TaskDeck
from taskdeck.config import Config
from taskdeck.models import ListCreate, TaskCreate, TaskMove
from taskdeck.services.errors import InvalidAnchorError


@pytest.fixture
def deck_config(tmp_path, monkeypatch):
    """Config file pointing at a throwaway database."""
    for name in ("TASKDECK_DATABASE_URL", "TASKDECK_TIMEZONE", "TASKDECK_POSITION_GAP",
                 "TASKDECK_POSITION_BASELINE", "TASKDECK_POSITION_MIN_DELTA",
                 "TASKDECK_DEFAULT_PAGE_SIZE", "TASKDECK_MAX_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        f"[database]\nurl = sqlite+aiosqlite:///{tmp_path / 'data' / 'deck.db'}\n\n"
        "[positions]\ngap = 10\nbaseline = 100\n\n"
        "[query]\ndefault_page_size = 5\nmax_page_size = 8\n\n"
        "[display]\ntimezone = UTC\n"
    )
    return Config(config_path)


@pytest_asyncio.fixture
async def deck(deck_config):
    app = TaskDeck(deck_config)
    await app.start()
    yield app
    await app.stop()


class TestTaskDeck:
    """End-to-end tests through the application context."""

    def test_settings_from_config(self, deck_config):
        app = TaskDeck(deck_config)

        assert app.policy.gap == 10.0
        assert app.policy.baseline == 100.0
        assert app.timezone_name == "UTC"
        assert app.settings()['query'] == {'default_page_size': 5, 'max_page_size': 8}

    def test_not_started(self, deck_config):
        app = TaskDeck(deck_config)
        with pytest.raises(RuntimeError):
            app.db_manager

    def test_build_query_applies_page_defaults(self, deck_config):
        app = TaskDeck(deck_config)

        assert app.build_query().page_size == 5
        assert app.build_query(page_size=50).page_size == 8
        assert app.build_query(page_size=3, sort="-priority").page_size == 3

    @pytest.mark.asyncio
    async def test_full_flow(self, deck):
        async with deck.with_user_service() as users:
            user = await users.create_user("flow@example.com")

        async with deck.with_list_service() as lists:
            work = await lists.create_list(user.id, ListCreate(title="Work"))
            home = await lists.create_list(user.id, ListCreate(title="Home"))

        assert work.position == 100.0
        assert home.position == 110.0

        async with deck.with_task_service() as tasks:
            first = await tasks.create_task(user.id, work.id, TaskCreate(title="first"))
            await tasks.create_task(user.id, work.id, TaskCreate(title="second"))
            moved = await tasks.move_task(user.id, first.id, TaskMove(target_list_id=home.id))

        assert moved.list_id == home.id

        async with deck.with_task_service() as tasks:
            page = await tasks.query_tasks(user.id, deck.build_query(list_id=work.id))

        assert [t.title for t in page.items] == ["second"]

    @pytest.mark.asyncio
    async def test_failed_operation_rolls_back(self, deck):
        async with deck.with_user_service() as users:
            user = await users.create_user("rollback@example.com")

        with pytest.raises(InvalidAnchorError):
            async with deck.with_list_service() as lists:
                await lists.create_list(user.id, ListCreate(title="Kept in transaction"))
                await lists.create_list(user.id, ListCreate(title="Bad", after_list_id=user.id))

        async with deck.with_list_service() as lists:
            assert await lists.get_lists(user.id) == []
