"""
This module defines the TranscodeSession, which re-encodes one video into a
bandwidth-reduced H.264/AAC MP4.

A session walks through these states:

    configuring -> reading_writing -> finishing -> done
                                 \\-> failed

While reading and writing, a video lane and an optional audio lane run as two
independent pull loops on a worker pool owned by the session. Each lane pulls
from its own track reader only while its writer input reports ready, and the
writer closes the container once every active lane has marked its input
finished. Video frames keep their source presentation timestamps, which is what
keeps audio and video in sync.
"""
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from fractions import Fraction
from pathlib import Path
from typing import List, Optional

import av
import av.error
from loguru import logger

from ..config.video import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_ENCODING_PROFILE,
    DEFAULT_MAX_WIDTH,
    MAX_INTERLEAVE_SECONDS,
    PROGRESS_LOG_EVERY_FRAMES,
    X264_PROFILE,
    EncodingProfile,
)
from ..domain.exceptions import (
    ReaderCannotStartException,
    ReaderInitFailedException,
    TranscodeException,
    WriterInitFailedException,
)
from ..domain.source_video import SourceVideo
from ..utils.format_utils import format_timedelta
from .frame_scaler import scale_frame
from .size_calculator import TargetGeometry

VIDEO = "video"
AUDIO = "audio"


class SessionState(str, Enum):
    CONFIGURING = "configuring"
    READING_WRITING = "reading_writing"
    FINISHING = "finishing"
    DONE = "done"
    FAILED = "failed"


def select_video_encoder(candidates) -> str:
    """
    Picks the video encoder for a session.

    Args:
        candidates: libav encoder names in order of preference.

    Returns:
        The first name the linked libav can open for writing.

    Raises:
        WriterInitFailedException: If none of them is available.
    """
    for name in candidates:
        try:
            av.codec.Codec(name, "w")
        except (ValueError, av.error.FFmpegError):
            logger.debug(f"Video encoder '{name}' is not available.")
            continue
        return name
    raise WriterInitFailedException(f"None of the video encoders {list(candidates)} is available")


class FrameRateLimiter:
    """
    Drops frames so that at most `target_rate` frames per second are kept.

    Kept frames keep their own timestamps; nothing is re-timed. When the source
    already runs at or below the target rate every frame is admitted.
    """

    def __init__(self, source_rate: float, target_rate: float):
        self.active = target_rate > 0 and source_rate > target_rate
        self.interval = 1.0 / target_rate if target_rate > 0 else 0.0
        self._slack = self.interval * 0.1
        self._next_due: Optional[float] = None

    def admit(self, frame_time: Optional[float]) -> bool:
        if not self.active or frame_time is None:
            return True
        if self._next_due is not None and frame_time < self._next_due - self._slack:
            return False
        if self._next_due is None or frame_time - self._next_due >= self.interval:
            self._next_due = frame_time + self.interval
        else:
            self._next_due += self.interval
        return True


class _TrackReader:
    """Demuxes and decodes one track of the source with its own container."""

    def __init__(self, path: Path, media_type: str):
        self.media_type = media_type
        self._frames = None
        self._lookahead = None
        try:
            self._container = av.open(str(path))
        except (av.error.FFmpegError, OSError) as e:
            raise ReaderInitFailedException(f"Could not open {media_type} reader on {path}: {e}") from e
        streams = self._container.streams.video if media_type == VIDEO else self._container.streams.audio
        if not streams:
            self._container.close()
            raise ReaderInitFailedException(f"No {media_type} stream to read in {path}")
        self.stream = streams[0]

    def start_reading(self):
        """Starts decoding and reads the first buffer so an unreadable track fails early."""
        try:
            if self.media_type == VIDEO:
                self.stream.thread_type = "AUTO"
            self._frames = self._container.decode(self.stream)
            self._lookahead = next(self._frames)
        except StopIteration:
            raise ReaderCannotStartException(f"The {self.media_type} track contains no decodable data")
        except (av.error.FFmpegError, ValueError) as e:
            raise ReaderCannotStartException(f"Could not start reading the {self.media_type} track: {e}") from e

    def copy_next(self):
        """Returns the next decoded frame, or None when the track is exhausted."""
        if self._lookahead is not None:
            frame, self._lookahead = self._lookahead, None
            return frame
        try:
            return next(self._frames)
        except StopIteration:
            return None
        except av.error.FFmpegError as e:
            raise TranscodeException(f"Decoding the {self.media_type} track failed: {e}") from e

    def close(self):
        self._container.close()


class _WriterInput:
    """One output stream of an `_AssetWriter`, fed by exactly one lane."""

    def __init__(self, writer: "_AssetWriter", stream, media_type: str):
        self.writer = writer
        self.stream = stream
        self.media_type = media_type
        self.finished = False
        self.last_time = 0.0
        self.appended = 0

    def wait_until_ready(self) -> bool:
        return self.writer.wait_until_ready(self)

    def append(self, frame):
        self.writer.append(self, frame)

    def mark_as_finished(self):
        self.writer.mark_as_finished(self)


class _AssetWriter:
    """
    Owns the output container and serializes writes from the lanes.

    Encoding, muxing and all readiness bookkeeping happen under one condition
    lock. The container opens every encoder on its first mux, so an encoder
    must never be used outside the lock.
    """

    def __init__(self, output_path: Path):
        """
        Creates the parent directory, removes a stale file and opens the MP4 container.

        Raises:
            WriterInitFailedException: If any of those steps fails, for example
                when a path component is an existing regular file.
        """
        self.output_path = output_path
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            if output_path.exists():
                output_path.unlink()
            self.container = av.open(str(output_path), mode="w", format="mp4")
        except (av.error.FFmpegError, OSError) as e:
            raise WriterInitFailedException(f"Could not create output container {output_path}: {e}") from e
        self._condition = threading.Condition()
        self._inputs: List[_WriterInput] = []
        self._error: Optional[BaseException] = None
        self._closed = False

    def add_video_input(
        self,
        encoder_name: str,
        geometry: TargetGeometry,
        bit_rate: int,
        frame_rate: float,
        time_base: Fraction,
        profile: EncodingProfile,
    ) -> _WriterInput:
        """
        Adds the H.264 output stream.

        Frames reach the encoder already turned upright, so the stream is sized
        to `geometry.display_size` and carries no rotation.

        Args:
            encoder_name: A libav encoder picked by `select_video_encoder`.
            geometry: Target geometry of the session.
            bit_rate: Target average bitrate in bits per second.
            frame_rate: Target frame rate; also used as the keyframe interval.
            time_base: Time base of the source video stream, so source
                timestamps can be passed through unchanged.
            profile: Pixel format and codec settings.

        Raises:
            WriterInitFailedException: If the stream cannot be configured.
        """
        options = {"profile": X264_PROFILE} if encoder_name == "libx264" else None
        try:
            stream = self.container.add_stream(
                encoder_name, rate=Fraction(frame_rate).limit_denominator(1001), options=options
            )
            codec_context = stream.codec_context
            codec_context.width, codec_context.height = geometry.display_size
            codec_context.pix_fmt = profile.pixel_format
            codec_context.bit_rate = bit_rate
            codec_context.gop_size = max(1, round(frame_rate))
            if time_base is not None:
                codec_context.time_base = time_base
        except (av.error.FFmpegError, ValueError, TypeError) as e:
            raise WriterInitFailedException(f"Could not configure the {encoder_name} video stream: {e}") from e
        return self._register(stream, VIDEO)

    def add_audio_input(self, profile: EncodingProfile) -> _WriterInput:
        try:
            stream = self.container.add_stream(profile.audio_codec, rate=profile.audio_sample_rate)
            codec_context = stream.codec_context
            codec_context.bit_rate = profile.audio_bit_rate
            codec_context.layout = profile.audio_layout
        except (av.error.FFmpegError, ValueError, TypeError) as e:
            raise WriterInitFailedException(f"Could not configure the {profile.audio_codec} audio stream: {e}") from e
        return self._register(stream, AUDIO)

    def _register(self, stream, media_type: str) -> _WriterInput:
        writer_input = _WriterInput(self, stream, media_type)
        self._inputs.append(writer_input)
        return writer_input

    def _is_ahead(self, writer_input: _WriterInput) -> bool:
        return any(
            other is not writer_input
            and not other.finished
            and writer_input.last_time - other.last_time > MAX_INTERLEAVE_SECONDS
            for other in self._inputs
        )

    def wait_until_ready(self, writer_input: _WriterInput) -> bool:
        """
        Blocks while `writer_input` is too far ahead of another unfinished input.

        Returns False once the input is finished or the writer has failed.
        """
        with self._condition:
            while (
                self._error is None
                and not writer_input.finished
                and self._is_ahead(writer_input)
            ):
                self._condition.wait()
            return self._error is None and not writer_input.finished

    def _write(self, writer_input: _WriterInput, frame):
        with self._condition:
            if self._error is not None:
                raise TranscodeException(f"Writer already failed: {self._error}")
            action = "Flushing" if frame is None else "Encoding"
            try:
                packets = writer_input.stream.encode(frame)
                self.container.mux(packets)
            except av.error.FFmpegError as e:
                raise TranscodeException(f"{action} {writer_input.media_type} failed: {e}") from e
            if frame is None:
                writer_input.finished = True
            else:
                writer_input.appended += 1
                if frame.time is not None:
                    writer_input.last_time = frame.time
            self._condition.notify_all()

    def append(self, writer_input: _WriterInput, frame):
        self._write(writer_input, frame)

    def mark_as_finished(self, writer_input: _WriterInput):
        """Flushes the input's encoder and stops waiting on this input."""
        self._write(writer_input, None)

    def fail(self, error: BaseException):
        """Records the first lane failure and wakes every waiting lane."""
        with self._condition:
            if self._error is None:
                self._error = error
            self._condition.notify_all()

    def finish_writing(self):
        """Writes the container trailer and closes the file."""
        try:
            self.container.close()
        except av.error.FFmpegError as e:
            raise TranscodeException(f"Could not finalize {self.output_path}: {e}") from e
        finally:
            self._closed = True

    def abort(self):
        if self._closed:
            return
        self._closed = True
        try:
            self.container.close()
        except (av.error.FFmpegError, OSError) as e:
            logger.debug(f"Ignoring error while closing aborted output {self.output_path}: {e}")


class TranscodeSession:
    """
    Drives one video through demux -> scale -> re-encode -> mux.

    Attributes:
        input_path: The source video.
        output_path: Where the finished MP4 is written. A pre-existing file is
            deleted first, and a partial file is deleted on failure.
        max_width: Cap for the target width (before orientation swap).
        aspect_ratio: Target (width, height) ratio of the output frames.
        keep_audio: Re-encode the source audio track when there is one.
        profile: The process-wide encoding profile.
        state: Current `SessionState`.
        source: Probed source metadata, set while configuring.
        geometry: Target output geometry, set while configuring.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        max_width: float = DEFAULT_MAX_WIDTH,
        aspect_ratio: tuple[float, float] = DEFAULT_ASPECT_RATIO,
        keep_audio: bool = True,
        profile: EncodingProfile = DEFAULT_ENCODING_PROFILE,
    ):
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.max_width = max_width
        self.aspect_ratio = aspect_ratio
        self.keep_audio = keep_audio
        self.profile = profile

        self.session_id = uuid.uuid4().hex[:8]
        self.state = SessionState.CONFIGURING
        self.source: Optional[SourceVideo] = None
        self.geometry: Optional[TargetGeometry] = None
        self.encoder_name = ""
        self.target_bit_rate = 0
        self.target_frame_rate = 0.0
        self._writer: Optional[_AssetWriter] = None

    def run(self) -> Path:
        """
        Runs the session to completion and returns the output file.

        Raises:
            TranscodeException: Or one of its subclasses, after the partial
                output has been removed.
        """
        started = datetime.now()
        logger.info(f"[{self.session_id}] Transcoding {self.input_path.name} -> {self.output_path.name}")
        try:
            self._configure()
            self._transcode()
        except TranscodeException as e:
            self._fail(e)
            raise
        except Exception as e:
            self._fail(e)
            raise TranscodeException(f"Unexpected error while transcoding {self.input_path}: {e}") from e

        logger.info(
            f"[{self.session_id}] Finished {self.output_path.name} in "
            f"{format_timedelta(datetime.now() - started)}"
        )
        return self.output_path

    def _configure(self):
        self.source = SourceVideo.probe(self.input_path)
        source_bit_rate = self.source.bit_rate or self.profile.max_bitrate
        source_frame_rate = self.source.frame_rate or self.profile.max_frame_rate
        self.target_bit_rate = min(source_bit_rate, self.profile.max_bitrate)
        self.target_frame_rate = min(source_frame_rate, self.profile.max_frame_rate)
        self.geometry = TargetGeometry.from_source(
            self.source.natural_size, self.source.transform, self.max_width, self.aspect_ratio
        )
        self.encoder_name = select_video_encoder(self.profile.video_encoders)
        logger.debug(
            f"[{self.session_id}] Source {self.source.natural_size[0]}x{self.source.natural_size[1]} "
            f"rot={self.source.transform.rotation} {self.source.bit_rate}bps {self.source.frame_rate:.2f}fps "
            f"audio={self.source.has_audio} -> {self.geometry.display_size[0]}x{self.geometry.display_size[1]} "
            f"{self.target_bit_rate}bps {self.target_frame_rate:.2f}fps via {self.encoder_name}"
        )

    def _transcode(self):
        readers: List[_TrackReader] = []
        try:
            video_reader = _TrackReader(self.input_path, VIDEO)
            readers.append(video_reader)
            audio_reader = None
            if self.keep_audio and self.source.has_audio:
                audio_reader = _TrackReader(self.input_path, AUDIO)
                readers.append(audio_reader)

            self._writer = _AssetWriter(self.output_path)
            video_input = self._writer.add_video_input(
                encoder_name=self.encoder_name,
                geometry=self.geometry,
                bit_rate=self.target_bit_rate,
                frame_rate=self.target_frame_rate,
                time_base=video_reader.stream.time_base,
                profile=self.profile,
            )
            audio_input = self._writer.add_audio_input(self.profile) if audio_reader else None

            for reader in readers:
                reader.start_reading()

            self.state = SessionState.READING_WRITING
            with ThreadPoolExecutor(
                max_workers=2, thread_name_prefix=f"transcode-{self.session_id}"
            ) as executor:
                futures = [executor.submit(self._run_video_lane, video_reader, video_input)]
                if audio_reader:
                    futures.append(executor.submit(self._run_audio_lane, audio_reader, audio_input))
            # Both lanes have returned; surface the first failure.
            for future in futures:
                future.result()

            self.state = SessionState.FINISHING
            self._writer.finish_writing()
            self.state = SessionState.DONE
        finally:
            for reader in readers:
                reader.close()

    def _run_video_lane(self, reader: _TrackReader, writer_input: _WriterInput):
        limiter = FrameRateLimiter(self.source.frame_rate, self.target_frame_rate)
        try:
            while writer_input.wait_until_ready():
                frame = reader.copy_next()
                if frame is None:
                    writer_input.mark_as_finished()
                    logger.debug(f"[{self.session_id}] Video lane finished ({writer_input.appended} frames).")
                    break
                if not limiter.admit(frame.time):
                    continue
                writer_input.append(scale_frame(frame, self.geometry.output_size, self.source.transform.rotation))
                if writer_input.appended % PROGRESS_LOG_EVERY_FRAMES == 0:
                    self._log_progress(frame.time)
        except Exception as e:
            writer_input.writer.fail(e)
            raise

    def _run_audio_lane(self, reader: _TrackReader, writer_input: _WriterInput):
        try:
            while writer_input.wait_until_ready():
                frame = reader.copy_next()
                if frame is None:
                    writer_input.mark_as_finished()
                    logger.debug(f"[{self.session_id}] Audio lane finished ({writer_input.appended} buffers).")
                    break
                writer_input.append(frame)
        except Exception as e:
            writer_input.writer.fail(e)
            raise

    def _log_progress(self, frame_time: Optional[float]):
        if frame_time is None or not self.source.duration:
            return
        logger.debug(f"[{self.session_id}] {self.input_path.name}: {min(frame_time / self.source.duration, 1.0):.0%}")

    def _fail(self, error: BaseException):
        self.state = SessionState.FAILED
        logger.error(f"[{self.session_id}] Transcode of {self.input_path.name} failed: {error}")
        if self._writer is not None:
            self._writer.abort()
        if self.output_path.exists():
            try:
                self.output_path.unlink()
                logger.debug(f"[{self.session_id}] Deleted partial output {self.output_path}")
            except OSError as e:
                logger.error(f"[{self.session_id}] Could not delete partial output {self.output_path}: {e}")
