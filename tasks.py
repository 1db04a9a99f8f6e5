import logging
from typing import List, Optional

from auth import Identity
from errors import NotFoundError, ValidationError
from storage import Storage, Task

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500

_UNSET = object()


def clean_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return title


class TaskService:
    """Owner-scoped task operations.

    A task that exists but belongs to another user raises the same
    NotFoundError as a task that does not exist at all.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def list(self, identity: Identity) -> List[Task]:
        return self.storage.list_tasks(identity.user_id)

    def create(self, identity: Identity, title: Optional[str]) -> Task:
        task = self.storage.add_task(identity.user_id, clean_title(title))
        logger.debug("User %s created task %s", identity.user_id, task.id)
        return task

    def update(self, identity: Identity, task_id: int, title=_UNSET, completed=_UNSET) -> Task:
        fields = {}
        if title is not _UNSET:
            fields["title"] = clean_title(title)
        if completed is not _UNSET:
            if not isinstance(completed, bool):
                raise ValidationError("Completed must be a boolean")
            fields["completed"] = completed

        if fields:
            task = self.storage.update_task(identity.user_id, task_id, **fields)
        else:
            task = self.storage.get_task(identity.user_id, task_id)
        if task is None:
            raise NotFoundError()
        return task

    def delete(self, identity: Identity, task_id: int) -> None:
        if not self.storage.delete_task(identity.user_id, task_id):
            raise NotFoundError()
        logger.debug("User %s deleted task %s", identity.user_id, task_id)
