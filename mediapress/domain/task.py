"""
Tasks and the per-item states a task moves its media through.

A `TaskMedia` value is one of four variants keyed by the owning item's id:

    Uncompressed -> Compressed -> Uploading -> Uploaded

Each variant only offers the transition to the next one, so a state can never
regress. Tasks are immutable; the queue replaces a whole task (and the whole
task list) whenever something changes.
"""
import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from ..config.common import TASK_STATUS_PENDING, TASK_STATUS_PROCESSING
from .media import CompressedMedia, MediaItem


@dataclass(frozen=True)
class RemoteMediaRef:
    """Reference to an uploaded media object, as returned by the media API."""

    id: str
    user: str
    key: str
    src: str
    type: str
    usecase: str
    created_at: str

    @classmethod
    def from_api_response(cls, data: dict) -> "RemoteMediaRef":
        """Builds a reference from the `data` object of an upload response."""
        return cls(
            id=data["_id"],
            user=data["user"],
            key=data["key"],
            src=data["src"],
            type=data["type"],
            usecase=data["usecase"],
            created_at=data["createdAt"],
        )


@dataclass(frozen=True)
class Uploaded:
    item: MediaItem
    compressed: CompressedMedia
    remote: RemoteMediaRef

    @property
    def id(self) -> str:
        return self.item.id


@dataclass(frozen=True)
class Uploading:
    item: MediaItem
    compressed: CompressedMedia

    @property
    def id(self) -> str:
        return self.item.id

    def uploaded(self, remote: RemoteMediaRef) -> Uploaded:
        return Uploaded(self.item, self.compressed, remote)


@dataclass(frozen=True)
class Compressed:
    item: MediaItem
    compressed: CompressedMedia

    @property
    def id(self) -> str:
        return self.item.id

    def uploading(self) -> Uploading:
        return Uploading(self.item, self.compressed)


@dataclass(frozen=True)
class Uncompressed:
    item: MediaItem

    @property
    def id(self) -> str:
        return self.item.id

    def compressed(self, compressed: CompressedMedia) -> Compressed:
        return Compressed(self.item, compressed)


TaskMedia = Union[Uncompressed, Compressed, Uploading, Uploaded]

ReadyCallback = Callable[[Optional[tuple[TaskMedia, ...]]], None]
ErrorCallback = Callable[[Exception], None]
ItemFailedCallback = Callable[[str, Exception], None]


def _new_task_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Task:
    """
    A batch of media items compressed and submitted together.

    Attributes:
        title: Human-readable label of the batch.
        items: Per-item states in selection order. Ids are unique.
        on_ready_to_submit: Called once every item has been processed, with
            the remaining items, or with None when every item was dropped.
        on_error: Called with a `CompletionCallbackFailedException` when
            `on_ready_to_submit` raises.
        on_item_failed: Called with the item id and the error whenever an
            item is dropped from the task. When unset, drops are only logged.
        id: Generated identifier.
        status: `pending` until the queue picks the task up.
    """

    title: str
    items: tuple[TaskMedia, ...]
    on_ready_to_submit: ReadyCallback
    on_error: Optional[ErrorCallback] = None
    on_item_failed: Optional[ItemFailedCallback] = None
    id: str = field(default_factory=_new_task_id)
    status: str = TASK_STATUS_PENDING

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        ids = [media.id for media in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Task '{self.title}' contains duplicate media ids: {ids}")
        if self.status not in (TASK_STATUS_PENDING, TASK_STATUS_PROCESSING):
            raise ValueError(f"Unknown task status: {self.status}")

    @classmethod
    def from_items(
        cls,
        title: str,
        items: Sequence[MediaItem],
        on_ready_to_submit: ReadyCallback,
        on_error: Optional[ErrorCallback] = None,
        on_item_failed: Optional[ItemFailedCallback] = None,
    ) -> "Task":
        """Creates a pending task with every item in the `Uncompressed` state."""
        return cls(
            title=title,
            items=tuple(Uncompressed(item) for item in items),
            on_ready_to_submit=on_ready_to_submit,
            on_error=on_error,
            on_item_failed=on_item_failed,
        )

    @property
    def is_processing(self) -> bool:
        return self.status == TASK_STATUS_PROCESSING

    @property
    def is_pending(self) -> bool:
        return self.status == TASK_STATUS_PENDING

    def with_status(self, status: str) -> "Task":
        return dataclasses.replace(self, status=status)

    def with_items(self, items: Sequence[TaskMedia]) -> "Task":
        return dataclasses.replace(self, items=tuple(items))

    def find_media(self, media_id: str) -> Optional[TaskMedia]:
        for media in self.items:
            if media.id == media_id:
                return media
        return None
