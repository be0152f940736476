"""
This module defines the TaskQueue, a FIFO queue of tasks drained strictly one
task at a time.

The drain loop runs on a single worker thread. For every item of the current
task it asks the compressor for a compressed payload; an item that fails is
removed from the task and the task carries on with the rest. Once every item
has been handled, the task's `on_ready_to_submit` callback receives the
surviving items (or None when nothing survived) and the task leaves the queue.

The task list is an immutable tuple. Every change builds a new tuple and swaps
it in under the queue lock, so readers always see a consistent snapshot.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

from loguru import logger

from ..config.common import TASK_STATUS_PROCESSING
from ..domain.exceptions import CompletionCallbackFailedException
from ..domain.media import CompressedMedia, MediaItem
from ..domain.task import Compressed, Task, TaskMedia, Uncompressed
from ..services.logging_service import ErrorLog, TaskReportLog


class Compressor(Protocol):
    def compress(self, item: MediaItem) -> CompressedMedia:
        ...


class TaskQueue:
    """
    Serial task queue.

    Attributes:
        compressor: Object whose `compress(item)` turns a `MediaItem` into a
            compressed payload, raising on failure.
        report_dir: When set, finished tasks are recorded in a YAML report and
            dropped items in an error log inside this directory.
    """

    def __init__(self, compressor: Compressor, report_dir: Optional[Path] = None):
        self.compressor = compressor
        self.report_dir = report_dir
        self._tasks: tuple[Task, ...] = ()
        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._draining = False
        self._closed = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="task-queue")
        self._report_log = TaskReportLog(report_dir) if report_dir else None
        self._error_log = ErrorLog(report_dir) if report_dir else None

    # --- Snapshots ---

    @property
    def tasks(self) -> tuple[Task, ...]:
        with self._lock:
            return self._tasks

    @property
    def processing_task(self) -> Optional[Task]:
        with self._lock:
            return next((task for task in self._tasks if task.is_processing), None)

    @property
    def is_processing(self) -> bool:
        return self.processing_task is not None

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return next((task for task in self._tasks if task.id == task_id), None)

    # --- Mutation ---

    def enqueue(self, task: Task) -> Task:
        """
        Appends `task` to the queue and starts draining if the queue is idle.

        Raises:
            RuntimeError: If the queue has been shut down.
            ValueError: If a task with the same id is already queued or not pending.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("TaskQueue has been shut down")
            if not task.is_pending:
                raise ValueError(f"Only pending tasks can be enqueued, got status '{task.status}'")
            if any(queued.id == task.id for queued in self._tasks):
                raise ValueError(f"Task {task.id} is already queued")

            self._tasks = self._tasks + (task,)
            logger.info(f"Queued task '{task.title}' ({task.id}) with {len(task.items)} item(s).")
            if not self._draining:
                self._draining = True
                self._executor.submit(self._drain)
            self._state_changed.notify_all()
        return task

    def _replace_task(self, task: Task) -> Task:
        with self._lock:
            if self.get_task(task.id) is None:
                raise KeyError(f"Task {task.id} is not queued")
            self._tasks = tuple(task if queued.id == task.id else queued for queued in self._tasks)
            self._state_changed.notify_all()
        return task

    def update_task_media(self, task_id: str, media: TaskMedia) -> Task:
        """
        Replaces the item with `media.id` in task `task_id` by `media`.

        The task list is rebuilt with a new `Task` value, so snapshots taken
        earlier through `tasks` keep the old item.

        Args:
            task_id: Id of a queued task.
            media: The new state of one of the task's items.

        Returns:
            The updated task.

        Raises:
            KeyError: If the task is not queued or has no item with that id.
        """
        with self._lock:
            task = self.get_task(task_id)
            if task is None:
                raise KeyError(f"Task {task_id} is not queued")
            if task.find_media(media.id) is None:
                raise KeyError(f"Task {task_id} has no media '{media.id}'")
            return self._replace_task(
                task.with_items(media if current.id == media.id else current for current in task.items)
            )

    def remove_task_media(self, task_id: str, media_id: str) -> Task:
        """
        Removes the item `media_id` from task `task_id`.

        Removing an id the task does not hold leaves the task unchanged.

        Args:
            task_id: Id of a queued task.
            media_id: Id of the item to drop.

        Returns:
            The updated task.

        Raises:
            KeyError: If the task is not queued.
        """
        with self._lock:
            task = self.get_task(task_id)
            if task is None:
                raise KeyError(f"Task {task_id} is not queued")
            return self._replace_task(task.with_items(media for media in task.items if media.id != media_id))

    def _remove_task(self, task_id: str):
        with self._lock:
            self._tasks = tuple(task for task in self._tasks if task.id != task_id)
            self._state_changed.notify_all()

    # --- Lifecycle ---

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until no task is pending or processing.

        Returns:
            False if `timeout` expired first.
        """
        with self._state_changed:
            return self._state_changed.wait_for(lambda: not self._draining and not self._tasks, timeout)

    def shutdown(self, wait: bool = True):
        """
        Refuses new tasks and stops the drain worker.

        Args:
            wait: Block until the task being processed, and any pending tasks
                the drain loop picks up, have finished.
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    # --- Drain loop ---

    def _next_pending(self) -> Optional[Task]:
        with self._lock:
            task = next((queued for queued in self._tasks if queued.is_pending), None)
            if task is None:
                self._draining = False
                self._state_changed.notify_all()
                return None
            return self._replace_task(task.with_status(TASK_STATUS_PROCESSING))

    def _drain(self):
        while True:
            task = self._next_pending()
            if task is None:
                logger.debug("Task queue drained.")
                return
            try:
                self._process(task)
            except Exception as e:
                # Keep draining; a broken task must not stall the ones behind it.
                logger.exception(f"Unexpected error while processing task {task.id}: {e}")
                self._remove_task(task.id)

    def _process(self, task: Task):
        started = datetime.now()
        logger.info(f"Processing task '{task.title}' ({task.id}) with {len(task.items)} item(s).")
        dropped: List[dict] = []

        for media in task.items:
            if not isinstance(media, Uncompressed):
                continue
            try:
                compressed = self.compressor.compress(media.item)
            except Exception as e:
                self._drop_item(task, media, e)
                dropped.append({"id": media.id, "reason": f"{type(e).__name__}: {e}"})
                continue
            self.update_task_media(task.id, media.compressed(compressed))

        current = self.get_task(task.id)
        remaining = current.items if current is not None and current.items else None
        try:
            task.on_ready_to_submit(remaining)
            logger.success(
                f"Task '{task.title}' ({task.id}) ready to submit with "
                f"{len(remaining) if remaining else 0} item(s)."
            )
        except Exception as e:
            error = CompletionCallbackFailedException(task.id, f"Completion of task {task.id} failed: {e}")
            error.__cause__ = e
            logger.error(str(error))
            self._notify_error(task, error)
        finally:
            self._remove_task(task.id)
            self._write_report(task, remaining, dropped, started)

    def _drop_item(self, task: Task, media: TaskMedia, error: Exception):
        logger.error(f"Dropping '{media.id}' from task {task.id}: {type(error).__name__}: {error}")
        self.remove_task_media(task.id, media.id)
        if self._error_log:
            self._error_log.write(
                f"Task: {task.title} ({task.id})",
                f"Media: {media.id}",
                f"Error: {type(error).__name__}: {error}",
            )
        if task.on_item_failed:
            try:
                task.on_item_failed(media.id, error)
            except Exception as hook_error:
                logger.error(f"on_item_failed hook of task {task.id} raised: {hook_error}")

    @staticmethod
    def _notify_error(task: Task, error: CompletionCallbackFailedException):
        if task.on_error is None:
            return
        try:
            task.on_error(error)
        except Exception as hook_error:
            logger.error(f"on_error hook of task {task.id} raised: {hook_error}")

    def _write_report(self, task: Task, remaining, dropped: List[dict], started: datetime):
        if self._report_log is None:
            return
        kept = [
            {"id": media.id, "size": media.compressed.size}
            for media in remaining or ()
            if isinstance(media, Compressed)
        ]
        self._report_log.write(
            {
                "task_id": task.id,
                "title": task.title,
                "started_at": started.isoformat(timespec="seconds"),
                "finished_at": datetime.now().isoformat(timespec="seconds"),
                "kept": kept,
                "dropped": dropped,
            }
        )
