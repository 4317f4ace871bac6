"""
Planwise — Plan Repository.

Typed access to routines, goals, tasks and review sessions on top of any
DocumentStorePort. All writes other than creation go through patch commands.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from planwise.data.documents import (
    GOALS,
    ROUTINES,
    SESSIONS,
    TASKS,
    goal_from_document,
    goal_to_document,
    isoformat,
    routine_draft_to_document,
    routine_from_document,
    session_from_document,
    session_to_document,
    task_from_document,
    task_to_document,
)

if TYPE_CHECKING:
    from planwise.data.commands import PatchCommand
    from planwise.data.models import Goal, ReviewSession, Routine, RoutineDraft, Task
    from planwise.ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)


class PlanRepository:
    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStorePort:
        return self._store

    async def apply(self, command: PatchCommand) -> None:
        """Send one patch command to the store."""
        collection = command.target_collection()
        await self._store.update(collection, command.entity_id, command.fields())
        logger.debug("Applied %s to %s/%s", type(command).__name__, collection, command.entity_id)

    # -- routines ------------------------------------------------------------

    async def create_routine(self, draft: RoutineDraft, now: datetime) -> Routine:
        document = routine_draft_to_document(draft)
        document["createdAt"] = document["updatedAt"] = isoformat(now)
        routine_id = await self._store.create(ROUTINES, document)
        routine = draft.stamp(routine_id, now)
        logger.info("Routine created: %s '%s' (%s)", routine.id, routine.title, routine.frequency.value)
        return routine

    async def get_routine(self, routine_id: str) -> Routine | None:
        doc = await self._store.get(ROUTINES, routine_id)
        if doc is None:
            return None
        return routine_from_document(doc)

    async def delete_routine(self, routine_id: str) -> bool:
        return await self._store.delete(ROUTINES, routine_id)

    async def list_routines(self, owner_id: str) -> list[Routine]:
        docs = await self._store.find(ROUTINES, {"ownerId": owner_id})
        return [routine_from_document(doc) for doc in docs]

    # -- goals ---------------------------------------------------------------

    async def add_goal(self, goal: Goal) -> Goal:
        """Persist a new goal. Its routines must already be stored."""
        document = goal_to_document(goal)
        if not goal.id:
            document.pop("id")
        goal_id = await self._store.create(GOALS, document)
        logger.info("Goal created: %s '%s'", goal_id, goal.name)
        return replace(goal, id=goal_id)

    async def get_goal(self, goal_id: str) -> Goal | None:
        doc = await self._store.get(GOALS, goal_id)
        if doc is None:
            return None
        return goal_from_document(doc, await self._load_routines(doc))

    async def list_goals(self, owner_id: str) -> list[Goal]:
        docs = await self._store.find(GOALS, {"ownerId": owner_id})
        return [goal_from_document(doc, await self._load_routines(doc)) for doc in docs]

    async def _load_routines(self, goal_doc: dict) -> list[Routine]:
        routines: list[Routine] = []
        for routine_id in goal_doc.get("routineIds", []):
            routine = await self.get_routine(routine_id)
            if routine is None:
                logger.warning("Goal %s references missing routine %s", goal_doc.get("id"), routine_id)
                continue
            routines.append(routine)
        return routines

    # -- standalone tasks ----------------------------------------------------

    async def add_task(self, task: Task) -> Task:
        document = task_to_document(task)
        if not task.id:
            document.pop("id")
        task_id = await self._store.create(TASKS, document)
        return replace(task, id=task_id)

    async def get_task(self, task_id: str) -> Task | None:
        doc = await self._store.get(TASKS, task_id)
        if doc is None:
            return None
        return task_from_document(doc)

    async def list_tasks(self, owner_id: str) -> list[Task]:
        """Standalone tasks owned by `owner_id`."""
        docs = await self._store.find(TASKS, {"ownerId": owner_id})
        return [task_from_document(doc) for doc in docs]

    # -- review sessions -----------------------------------------------------

    async def create_session(self, session: ReviewSession) -> ReviewSession:
        document = session_to_document(session)
        if not session.id:
            document.pop("id")
        session_id = await self._store.create(SESSIONS, document)
        return replace(session, id=session_id)

    async def get_session(self, session_id: str) -> ReviewSession | None:
        doc = await self._store.get(SESSIONS, session_id)
        if doc is None:
            return None
        return session_from_document(doc)
