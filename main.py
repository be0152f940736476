"""
Main entry point for mediapress.

Loads the given photos and videos into a selection, submits them as one task,
waits for the queue to compress everything and logs where each result went.
"""

import sys

from loguru import logger

from mediapress.cli import get_args
from mediapress.config.common import IMPORT_DIR_NAME, LOGGER_FORMAT, OUTPUT_DIR_NAME, WORK_DIR
from mediapress.config.image import IMAGE_EXTENSIONS
from mediapress.config.video import VIDEO_EXTENSIONS
from mediapress.domain.media import CompressedImage, CompressedVideo
from mediapress.pipeline.media_compressor import MediaCompressor
from mediapress.pipeline.selection import MediaSelection
from mediapress.pipeline.task_queue import TaskQueue
from mediapress.utils.format_utils import contains_any_extensions, formatted_size, sanitized_file_name
from mediapress.utils.toolchain import Toolchain


# Configure the logger for initial setup.
# The level might be overridden later by command-line arguments.
logger.remove()
log_level = "DEBUG" if __debug__ else "INFO"
logger.add(sys.stderr, level=log_level, format=LOGGER_FORMAT)


def main() -> int:
    """
    Runs one compression task over the files given on the command line.

    Returns:
        The process exit code: 0 when at least one item was compressed.
    """
    args = get_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if __debug__ else args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    if not Toolchain.verify():
        logger.error("ffprobe is required to read video metadata. Aborting.")
        return 1

    work_dir = args.work_dir or WORK_DIR
    output_dir = work_dir / OUTPUT_DIR_NAME
    compressor = MediaCompressor(
        output_dir=output_dir,
        max_width=args.max_width,
        aspect_ratio=args.aspect_ratio,
        jpeg_quality=args.jpeg_quality,
        image_format=args.image_format,
        keep_audio=not args.no_audio,
    )
    queue = TaskQueue(compressor, report_dir=work_dir)
    selection = MediaSelection(queue, import_dir=work_dir / IMPORT_DIR_NAME)

    paths = [path.resolve() for path in args.files]
    selection.select(str(path) for path in paths)
    for path in paths:
        media_id = str(path)
        if not path.is_file():
            selection.fail(media_id, FileNotFoundError(f"No such file: {path}"))
        elif contains_any_extensions(path, IMAGE_EXTENSIONS):
            try:
                data = path.read_bytes()
            except OSError as e:
                selection.fail(media_id, e)
                continue
            selection.load_image(media_id, data)
        else:
            if not contains_any_extensions(path, VIDEO_EXTENSIONS):
                logger.warning(f"Unknown extension '{path.suffix}' for {path.name}. Treating it as a video.")
            selection.load_video(media_id, path)

    task = selection.submit(title=args.title)
    if task is None:
        logger.error("Not every file could be loaded. Nothing was submitted.")
        queue.shutdown()
        return 1

    queue.wait_until_idle()
    queue.shutdown()

    image_dir = output_dir / "images"
    for media_id, payload in selection.compressed:
        if isinstance(payload, CompressedVideo):
            logger.info(f"{media_id} -> {payload.path} ({formatted_size(payload.size)})")
        elif isinstance(payload, CompressedImage):
            image_path = image_dir / sanitized_file_name(media_id, f".{args.image_format.value}")
            image_path.parent.mkdir(parents=True, exist_ok=True)
            image_path.write_bytes(payload.data)
            logger.info(f"{media_id} -> {image_path} ({formatted_size(payload.size)})")
    for media_id, error in selection.failed_items.items():
        logger.warning(f"{media_id} was dropped: {error}")

    logger.success(f"mediapress finished: {len(selection.compressed)}/{len(paths)} item(s) compressed.")
    return 0 if selection.compressed else 1


if __name__ == "__main__":
    sys.exit(main())
