"""Outbound trigger: launch a level's modules to a user.

Provisioning the modules (assigning them, notifying the learner) belongs
to another service.  All this side promises is to hand over
(user_id, level_id, module_ids) once per advancement.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from progression.services.task_queue import MODULE_LAUNCH_QUEUE, TaskQueue

logger = logging.getLogger(__name__)


@runtime_checkable
class ModuleLauncher(Protocol):
    async def launch(
        self, user_id: int, level_id: int, module_ids: Sequence[int]
    ) -> None: ...


class QueueModuleLauncher:
    """Publishes launch requests on the module_launch queue."""

    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def launch(
        self, user_id: int, level_id: int, module_ids: Sequence[int]
    ) -> None:
        task = await self._queue.enqueue(
            MODULE_LAUNCH_QUEUE,
            {
                "user_id": user_id,
                "level_id": level_id,
                "module_ids": list(module_ids),
            },
        )
        logger.info(
            "Queued launch of level=%s modules=%s for user=%s task=%s",
            level_id,
            list(module_ids),
            user_id,
            task.id,
        )
