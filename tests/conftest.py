"""
Pytest configuration and fixtures for TaskDeck tests.

Provides database fixtures, sample owners and lists, and test data factories.
"""

import pytest
import pytest_asyncio
from datetime import datetime
from uuid import UUID, uuid4

from taskdeck.database import DatabaseManager, TaskListORM, TaskORM, UserORM
from taskdeck.models import Task, TaskStatus


@pytest_asyncio.fixture
async def db_manager():
    """
    Create an in-memory SQLite database for testing.

    Yields:
        DatabaseManager instance with in-memory database
    """
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.initialize()

    yield manager

    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager):
    """
    Provide a database session for tests.

    Args:
        db_manager: Database manager fixture

    Yields:
        AsyncSession for database operations
    """
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def sample_user_id():
    """Generate a consistent UUID for the owning user."""
    return UUID("0f0e0d0c-0b0a-0908-0706-050403020100")


@pytest.fixture
def other_user_id():
    """Generate a consistent UUID for a second, unrelated user."""
    return UUID("aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee")


@pytest.fixture
def sample_list_id():
    """Generate a consistent UUID for testing task lists."""
    return UUID("12345678-1234-5678-1234-567812345678")


@pytest_asyncio.fixture
async def sample_user(db_session, sample_user_id):
    """Create the owning user in the database."""
    user = UserORM(
        id=str(sample_user_id),
        email="owner@example.com",
        name="Owner",
        created_at=datetime.utcnow(),
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def other_user(db_session, other_user_id):
    """Create a second user who must never see the first user's data."""
    user = UserORM(
        id=str(other_user_id),
        email="stranger@example.com",
        name="Stranger",
        created_at=datetime.utcnow(),
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def sample_task_list(db_session, sample_user, sample_list_id):
    """
    Create a sample task list in the database.

    Returns:
        TaskListORM instance
    """
    now = datetime.utcnow()
    task_list = TaskListORM(
        id=str(sample_list_id),
        user_id=sample_user.id,
        title="Work",
        position=65536.0,
        created_at=now,
        updated_at=now,
    )
    db_session.add(task_list)
    await db_session.commit()
    return task_list


@pytest_asyncio.fixture
async def second_task_list(db_session, sample_user):
    """Create a second list for the same user, after the sample list."""
    now = datetime.utcnow()
    task_list = TaskListORM(
        id=str(uuid4()),
        user_id=sample_user.id,
        title="Home",
        position=66560.0,
        created_at=now,
        updated_at=now,
    )
    db_session.add(task_list)
    await db_session.commit()
    return task_list


@pytest.fixture
def add_task_rows(db_session):
    """
    Factory fixture inserting task rows with explicit positions.

    Example:
        async def test_something(add_task_rows, sample_task_list):
            rows = await add_task_rows(sample_task_list, [1.0, 2.0, 3.0])
    """
    async def _add_task_rows(task_list, positions, **fields):
        rows = []
        now = datetime.utcnow()
        for index, position in enumerate(positions):
            row = TaskORM(
                id=str(uuid4()),
                user_id=task_list.user_id,
                list_id=task_list.id,
                title=fields.get("title", f"Task {index}"),
                description=fields.get("description"),
                status=fields.get("status", "todo"),
                priority=fields.get("priority", 3),
                tags=fields.get("tags", ""),
                due_date=fields.get("due_date"),
                position=position,
                created_at=now,
                updated_at=now,
            )
            db_session.add(row)
            rows.append(row)
        await db_session.commit()
        return rows
    return _add_task_rows


@pytest.fixture
def make_task():
    """
    Factory fixture for creating Task Pydantic models.

    Example:
        def test_something(make_task):
            task = make_task(title="Custom Task", priority=5)
    """
    user_id = uuid4()
    list_id = uuid4()

    def _make_task(
        title: str = "Test Task",
        description: str = None,
        status: TaskStatus = TaskStatus.TODO,
        priority: int = 3,
        tags: list = None,
        due_date: datetime = None,
        position: float = 0.0,
        list_id: UUID = None,
    ) -> Task:
        return Task(
            user_id=user_id,
            list_id=list_id or _make_task.list_id,
            title=title,
            description=description,
            status=status,
            priority=priority,
            tags=tags or [],
            due_date=due_date,
            position=position,
        )

    _make_task.list_id = list_id
    return _make_task
