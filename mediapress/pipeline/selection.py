"""
The media selection: the user's picked photos and videos while they load, and
the submit step that hands a fully loaded selection to the task queue.

Every selected id moves through its own small state machine:

    Loading -> Loaded(item)
            -> LoadFailed(error)
"""
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from ..config.common import DEFAULT_TASK_TITLE, IMPORT_DIR_NAME, WORK_DIR
from ..domain.exceptions import StillCompressFailedException
from ..domain.media import CompressedMedia, MediaItem, StillImage, VideoFile
from ..domain.task import Compressed, Task, TaskMedia
from ..services.still_compressor import decode_still
from ..utils.format_utils import sanitized_file_name
from .task_queue import TaskQueue


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class LoadFailed:
    error: Exception


@dataclass(frozen=True)
class Loaded:
    item: MediaItem


SelectionState = Union[Loading, LoadFailed, Loaded]


class MediaSelection:
    """
    Collects loaded media and submits them as one task.

    Attributes:
        queue: The task queue submissions go to.
        import_dir: Where local copies of selected videos are kept.
        compressed: `(media_id, payload)` pairs delivered by finished tasks,
            in completion order.
        failed_items: Media ids dropped during compression, with the error.
        errors: Errors reported by the queue for failed task completions.
    """

    def __init__(self, queue: TaskQueue, import_dir: Optional[Path] = None):
        self.queue = queue
        self.import_dir = Path(import_dir) if import_dir else WORK_DIR / IMPORT_DIR_NAME
        self._lock = threading.Lock()
        self._states: Dict[str, SelectionState] = {}
        self.compressed: List[Tuple[str, CompressedMedia]] = []
        self.failed_items: Dict[str, Exception] = {}
        self.errors: List[Exception] = []

    @property
    def states(self) -> Dict[str, SelectionState]:
        with self._lock:
            return dict(self._states)

    def select(self, media_ids: Iterable[str]):
        """
        Replaces the selection.

        Args:
            media_ids: The picked ids, in the order they should be submitted.
                Every id starts out `Loading`; earlier states are discarded.
        """
        with self._lock:
            self._states = {media_id: Loading() for media_id in media_ids}
        logger.debug(f"Selected {len(self._states)} item(s).")

    def _set_state(self, media_id: str, state: SelectionState):
        with self._lock:
            if media_id not in self._states:
                raise KeyError(f"'{media_id}' is not part of the current selection")
            self._states[media_id] = state

    def load_image(self, media_id: str, data: bytes):
        """
        Decodes raw image bytes for `media_id`.

        On success the id becomes `Loaded` with a `StillImage` payload that
        remembers the original byte count. Bytes that cannot be decoded mark
        the id `LoadFailed` instead of raising.

        Args:
            media_id: A selected id.
            data: The encoded image as delivered by the picker.

        Raises:
            KeyError: If `media_id` is not part of the current selection.
        """
        try:
            image = decode_still(data)
        except StillCompressFailedException as e:
            self.fail(media_id, e)
            return
        self._set_state(media_id, Loaded(MediaItem(media_id, StillImage(image, source_size=len(data)))))

    def load_video(self, media_id: str, source_path: Path):
        """
        Copies the video at `source_path` into the import directory.

        A previous copy for the same id is replaced. The copy, not the
        original, is what gets transcoded.

        Args:
            media_id: A selected id. It also names the copy, with path
                separators flattened.
            source_path: The picked video file. It is left untouched.

        Raises:
            KeyError: If `media_id` is not part of the current selection.
                A failed copy marks the id `LoadFailed` instead of raising.
        """
        source_path = Path(source_path)
        destination = self.import_dir / sanitized_file_name(media_id, source_path.suffix)
        try:
            self.import_dir.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                destination.unlink()
            shutil.copy2(source_path, destination)
        except OSError as e:
            self.fail(media_id, e)
            return
        logger.debug(f"Imported '{source_path.name}' as '{destination}'")
        self._set_state(media_id, Loaded(MediaItem(media_id, VideoFile(destination))))

    def fail(self, media_id: str, error: Exception):
        """Marks `media_id` as `LoadFailed`, for loaders that fail outside this class."""
        logger.warning(f"Loading '{media_id}' failed: {error}")
        self._set_state(media_id, LoadFailed(error))

    @property
    def is_ready_to_submit(self) -> bool:
        with self._lock:
            return bool(self._states) and all(isinstance(state, Loaded) for state in self._states.values())

    def submit(self, title: str = DEFAULT_TASK_TITLE) -> Optional[Task]:
        """
        Enqueues the loaded selection as one task.

        Returns:
            The queued task, or None (and nothing is queued) when the selection
            is empty or not fully loaded.
        """
        if not self.is_ready_to_submit:
            logger.info("Selection is not ready to submit yet.")
            return None
        with self._lock:
            items = [state.item for state in self._states.values()]
        task = Task.from_items(
            title,
            items,
            on_ready_to_submit=self._on_ready_to_submit,
            on_error=self._on_error,
            on_item_failed=self._on_item_failed,
        )
        return self.queue.enqueue(task)

    def _on_ready_to_submit(self, medias: Optional[Tuple[TaskMedia, ...]]):
        if medias is None:
            logger.warning("No media left to submit.")
            return
        with self._lock:
            self.compressed.extend(
                (media.id, media.compressed) for media in medias if isinstance(media, Compressed)
            )

    def _on_item_failed(self, media_id: str, error: Exception):
        with self._lock:
            self.failed_items[media_id] = error

    def _on_error(self, error: Exception):
        with self._lock:
            self.errors.append(error)
