"""End-to-end transcode tests on short synthetic clips."""

import dataclasses
import threading

import av
import ffmpeg
import pytest

from mediapress.config.video import DEFAULT_ENCODING_PROFILE, EncodingProfile
from mediapress.domain.exceptions import (
    FrameScaleFailedException,
    NoVideoTrackException,
    ReaderCannotStartException,
    ReaderInitFailedException,
    WriterInitFailedException,
)
from mediapress.domain.media import CompressedVideo, MediaItem, VideoFile
from mediapress.domain.source_video import IDENTITY_TRANSFORM, OrientationTransform, SourceVideo
from mediapress.domain.task import Task
from mediapress.pipeline.media_compressor import MediaCompressor
from mediapress.pipeline.task_queue import TaskQueue
from mediapress.services import transcode_session
from mediapress.services.frame_scaler import scale_frame
from mediapress.services.transcode_session import (
    FrameRateLimiter,
    SessionState,
    TranscodeSession,
    select_video_encoder,
)

from tests.conftest import count_video_frames, requires_ffprobe, requires_h264


def _streams(path, codec_type):
    return [s for s in ffmpeg.probe(str(path))["streams"] if s["codec_type"] == codec_type]


def _probe_with_rotation(monkeypatch, degrees):
    """Makes every probed source report a display rotation of `degrees`."""
    probe = SourceVideo.probe

    def rotated_probe(path):
        return dataclasses.replace(probe(path), transform=OrientationTransform.from_rotation(degrees))

    monkeypatch.setattr(SourceVideo, "probe", staticmethod(rotated_probe))


def _corrupt_media_data(path):
    """Overwrites every byte of the `mdat` payload, leaving the container headers intact."""
    data = bytearray(path.read_bytes())
    start = data.index(b"mdat") + 4
    size = int.from_bytes(data[start - 8:start - 4], "big")
    data[start:start - 8 + size] = b"\xff" * (size - 8)
    path.write_bytes(bytes(data))


class TestFrameRateLimiter:
    def test_inactive_when_source_is_slow_enough(self):
        limiter = FrameRateLimiter(source_rate=24, target_rate=30)
        assert all(limiter.admit(i / 24) for i in range(48))

    def test_halves_a_60fps_source(self):
        limiter = FrameRateLimiter(source_rate=60, target_rate=30)
        kept = [i for i in range(120) if limiter.admit(i / 60)]
        assert len(kept) == 60
        assert kept[:4] == [0, 2, 4, 6]

    def test_keeps_timestamps_without_retiming(self):
        limiter = FrameRateLimiter(source_rate=50, target_rate=30)
        times = [i / 50 for i in range(100)]
        kept = [t for t in times if limiter.admit(t)]
        assert set(kept) <= set(times)
        assert 55 <= len(kept) <= 61

    def test_frames_without_timestamp_are_kept(self):
        limiter = FrameRateLimiter(source_rate=60, target_rate=30)
        assert limiter.admit(None)


class TestEncoderSelection:
    def test_unknown_encoders_are_rejected(self):
        with pytest.raises(WriterInitFailedException):
            select_video_encoder(["no-such-encoder"])


@requires_ffprobe
class TestFailures:
    def test_unreadable_source_fails_with_no_video_track(self, tmp_path):
        source = tmp_path / "broken.mp4"
        source.write_text("garbage")
        output = tmp_path / "out.mp4"
        session = TranscodeSession(source, output)
        with pytest.raises(NoVideoTrackException):
            session.run()
        assert session.state == SessionState.FAILED
        assert not output.exists()

    def test_audio_only_source_fails_with_no_video_track(self, clip_factory, tmp_path):
        source = clip_factory("tone.m4a", with_video=False)
        output = tmp_path / "out.mp4"
        with pytest.raises(NoVideoTrackException):
            TranscodeSession(source, output).run()
        assert not output.exists()


@requires_ffprobe
@requires_h264
class TestSessionErrors:
    def test_missing_video_stream_fails_reader_init(self, clip_factory, tmp_path, monkeypatch):
        source = clip_factory("tone.m4a", with_video=False)
        probed = SourceVideo(
            path=source,
            natural_size=(320, 240),
            transform=IDENTITY_TRANSFORM,
            bit_rate=500_000,
            frame_rate=30.0,
            duration=1.0,
            has_audio=False,
        )
        monkeypatch.setattr(SourceVideo, "probe", staticmethod(lambda path: probed))
        output = tmp_path / "out.mp4"
        session = TranscodeSession(source, output)
        with pytest.raises(ReaderInitFailedException):
            session.run()
        assert session.state == SessionState.FAILED
        assert not output.exists()

    def test_corrupt_video_packets_fail_reader_start(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=10, with_audio=False)
        _corrupt_media_data(source)
        output = tmp_path / "out.mp4"
        session = TranscodeSession(source, output)
        with pytest.raises(ReaderCannotStartException):
            session.run()
        assert session.state == SessionState.FAILED
        assert not output.exists()

    def test_output_under_a_regular_file_fails_writer_init(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=5)
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        session = TranscodeSession(source, blocker / "out.mp4")
        with pytest.raises(WriterInitFailedException):
            session.run()
        assert session.state == SessionState.FAILED
        assert blocker.read_text() == "not a directory"

    def test_scale_failure_mid_stream_fails_the_session_and_removes_output(self, clip_factory, tmp_path, monkeypatch):
        source = clip_factory(frame_count=60)
        output = tmp_path / "out.mp4"
        scaled = []

        def scale_until_twentieth(frame, target_size, rotation=0):
            scaled.append(frame.pts)
            if len(scaled) == 20:
                raise FrameScaleFailedException("out of buffers")
            return scale_frame(frame, target_size, rotation)

        monkeypatch.setattr(transcode_session, "scale_frame", scale_until_twentieth)
        session = TranscodeSession(source, output)
        errors = []

        def run():
            try:
                session.run()
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=run, daemon=True)
        worker.start()
        worker.join(60)

        assert not worker.is_alive()
        (error,) = errors
        assert isinstance(error, FrameScaleFailedException)
        assert session.state == SessionState.FAILED
        assert len(scaled) == 20
        assert not output.exists()

    def test_unreadable_video_is_dropped_from_its_task(self, clip_factory, tmp_path):
        good = clip_factory("good.mp4", frame_count=10)
        bad = tmp_path / "bad.mov"
        bad.write_bytes(b"\x00" * 512)
        output_dir = tmp_path / "compressed"
        results = []
        failed = []
        task = Task.from_items(
            "Add Review",
            [MediaItem("bad", VideoFile(bad)), MediaItem("good", VideoFile(good))],
            on_ready_to_submit=results.append,
            on_item_failed=lambda media_id, error: failed.append((media_id, error)),
        )
        queue = TaskQueue(MediaCompressor(output_dir=output_dir))
        try:
            queue.enqueue(task)
            assert queue.wait_until_idle(120)
        finally:
            queue.shutdown()

        (medias,) = results
        assert [media.id for media in medias] == ["good"]
        assert isinstance(medias[0].compressed, CompressedVideo)
        ((media_id, error),) = failed
        assert media_id == "bad"
        assert isinstance(error, NoVideoTrackException)
        assert not (output_dir / "bad.mp4").exists()



@requires_h264
class TestTranscode:
    def test_landscape_clip_is_cropped_to_nine_by_sixteen(self, clip_factory, tmp_path):
        source = clip_factory(width=320, height=240, frame_count=30)
        output = tmp_path / "out" / "clip.mp4"
        session = TranscodeSession(source, output, max_width=1080, aspect_ratio=(9, 16))

        assert session.run() == output
        assert session.state == SessionState.DONE
        assert session.geometry.output_size == (136, 240)

        (video,) = _streams(output, "video")
        assert video["codec_name"] == "h264"
        assert (int(video["width"]), int(video["height"])) == (136, 240)
        (audio,) = _streams(output, "audio")
        assert audio["codec_name"] == "aac"
        assert int(audio["sample_rate"]) == 44_100
        assert int(audio["channels"]) == 2
        assert count_video_frames(output) == 30

    def test_portrait_source_is_written_upright(self, clip_factory, tmp_path, monkeypatch):
        # Stored 320x180 frames shown rotated a quarter turn, i.e. a 180x320 portrait clip.
        source = clip_factory(width=320, height=180, frame_count=15, with_audio=False)
        _probe_with_rotation(monkeypatch, 90)
        output = tmp_path / "portrait.mp4"
        session = TranscodeSession(source, output, max_width=1080, aspect_ratio=(9, 16))
        session.run()

        assert session.geometry.output_size == (320, 180)
        assert session.geometry.display_size == (180, 320)
        (video,) = _streams(output, "video")
        assert (int(video["width"]), int(video["height"])) == (180, 320)
        assert "rotate" not in (video.get("tags") or {})
        assert not any("rotation" in side_data for side_data in video.get("side_data_list") or [])
        assert count_video_frames(output) == 15

    def test_audio_can_be_dropped(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=15)
        output = tmp_path / "silent.mp4"
        TranscodeSession(source, output, keep_audio=False).run()
        assert _streams(output, "audio") == []
        assert len(_streams(output, "video")) == 1

    def test_source_without_audio(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=15, with_audio=False)
        output = tmp_path / "out.mp4"
        TranscodeSession(source, output).run()
        assert _streams(output, "audio") == []

    def test_frame_rate_is_clamped(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=60, frame_rate=60, with_audio=False)
        output = tmp_path / "out.mp4"
        session = TranscodeSession(source, output)
        session.run()
        assert session.target_frame_rate == 30
        assert 29 <= count_video_frames(output) <= 31

    def test_bitrate_is_capped(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=10)
        profile = EncodingProfile(max_bitrate=200_000)
        session = TranscodeSession(source, tmp_path / "out.mp4", profile=profile)
        session.run()
        assert session.target_bit_rate <= 200_000

    def test_existing_output_is_replaced(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=10)
        output = tmp_path / "out.mp4"
        output.write_bytes(b"stale")
        TranscodeSession(source, output).run()
        with av.open(str(output)) as container:
            assert len(container.streams.video) == 1

    def test_media_compressor_names_output_after_the_item(self, clip_factory, tmp_path):
        source = clip_factory(frame_count=10)
        compressor = MediaCompressor(output_dir=tmp_path / "compressed", profile=DEFAULT_ENCODING_PROFILE)
        compressed = compressor.compress(MediaItem("library/IMG_0001", VideoFile(source)))
        assert isinstance(compressed, CompressedVideo)
        assert compressed.path == tmp_path / "compressed" / "library-IMG_0001.mp4"
        assert compressed.size > 0
