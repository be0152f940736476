"""
Defines custom exception types for mediapress.

Per-item failures (transcode or still compression) are caught by the task queue,
which drops the failing item from its task. Only a failure of the completion
callback reaches the caller, through the task's error callback.

All custom exceptions inherit from the base `MediaPressException`.
"""


class MediaPressException(Exception):
    """Base class for all custom exceptions in mediapress."""

    pass


# --- Transcode Session Exceptions ---
class TranscodeException(MediaPressException):
    """
    Base class for failures of a video transcode session.

    Raised directly for decode or encode errors that happen after both the
    reader and the writer have started.
    """

    pass


class NoVideoTrackException(TranscodeException):
    """
    Raised when the source has no decodable video track.

    This also covers sources that ffprobe cannot read at all, since no video
    metadata can be loaded from them.
    """

    pass


class ReaderInitFailedException(TranscodeException):
    """Raised when a demuxer cannot be opened on the source file."""

    pass


class WriterInitFailedException(TranscodeException):
    """Raised when the output container or its streams cannot be configured."""

    pass


class ReaderCannotStartException(TranscodeException):
    """Raised when a track reader cannot decode its first buffer."""

    pass


class FrameScaleFailedException(TranscodeException):
    """
    Raised when a decoded frame cannot be scaled into a new buffer.

    This is fatal for the whole video: skipping a frame would break the
    timing of the encoded stream.
    """

    pass


# --- Still Image Exceptions ---
class StillCompressFailedException(MediaPressException):
    """Raised when a still image cannot be encoded. No partial output is returned."""

    pass


# --- Task Queue Exceptions ---
class CompletionCallbackFailedException(MediaPressException):
    """
    Raised when a task's completion callback throws.

    The original exception is chained as `__cause__`. This is the only error
    the queue surfaces to the task owner.
    """

    def __init__(self, task_id: str, message: str):
        super().__init__(message)
        self.task_id = task_id
