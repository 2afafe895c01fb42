"""Conversions between ORM rows and pydantic models."""

from uuid import UUID

from taskdeck.database import TaskListORM, TaskORM, UserORM
from taskdeck.models import Task, TaskList, TaskStatus, User


def task_from_orm(task_orm: TaskORM) -> Task:
    """
    Convert TaskORM to Pydantic Task model.

    Args:
        task_orm: SQLAlchemy ORM task instance

    Returns:
        Pydantic Task instance
    """
    return Task(
        id=UUID(task_orm.id),
        user_id=UUID(task_orm.user_id),
        list_id=UUID(task_orm.list_id),
        title=task_orm.title,
        description=task_orm.description,
        status=TaskStatus(task_orm.status),
        priority=task_orm.priority,
        tags=task_orm.tag_list,
        due_date=task_orm.due_date,
        position=task_orm.position,
        created_at=task_orm.created_at,
        updated_at=task_orm.updated_at,
    )


def list_from_orm(list_orm: TaskListORM) -> TaskList:
    """Convert TaskListORM to Pydantic TaskList (counts left at zero)."""
    return TaskList(
        id=UUID(list_orm.id),
        user_id=UUID(list_orm.user_id),
        title=list_orm.title,
        position=list_orm.position,
        created_at=list_orm.created_at,
        updated_at=list_orm.updated_at,
    )


def user_from_orm(user_orm: UserORM) -> User:
    """Convert UserORM to Pydantic User."""
    return User(
        id=UUID(user_orm.id),
        email=user_orm.email,
        name=user_orm.name,
        created_at=user_orm.created_at,
    )
