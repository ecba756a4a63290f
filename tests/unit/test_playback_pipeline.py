# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.playback import PlaybackPipeline, decode_chunk

from fakes import FakeSink


def _pcm(duration_s: float, value: int = 8000, sample_rate_hz: int = 24_000) -> bytes:
    samples = int(round(duration_s * sample_rate_hz))
    return np.full(samples, value, dtype="<i2").tobytes()


def _pipeline() -> tuple[PlaybackPipeline, FakeSink, list[float]]:
    levels: list[float] = []
    sink = FakeSink()
    pipeline = PlaybackPipeline(on_level=levels.append)
    pipeline.start(sink)
    return pipeline, sink, levels


# ---------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------

def test_chunks_play_back_to_back():
    pipeline, sink, _ = _pipeline()

    first = pipeline.enqueue(_pcm(0.5))
    sink.now = 0.1
    second = pipeline.enqueue(_pcm(0.3))

    assert first is not None and second is not None
    assert first.start_time == pytest.approx(0.0)
    assert second.start_time == pytest.approx(0.5)
    assert pipeline.next_playback_time == pytest.approx(0.8)
    assert len(pipeline) == 2


def test_chunk_never_starts_in_the_past():
    pipeline, sink, _ = _pipeline()

    pipeline.enqueue(_pcm(0.2))
    sink.now = 1.5
    late = pipeline.enqueue(_pcm(0.2))

    assert late is not None
    assert late.start_time == pytest.approx(1.5)
    assert pipeline.next_playback_time == pytest.approx(1.7)


def test_scheduled_chunks_never_overlap():
    pipeline, sink, _ = _pipeline()

    for i, duration in enumerate((0.12, 0.05, 0.3, 0.08)):
        sink.now = i * 0.04
        pipeline.enqueue(_pcm(duration))

    for earlier, later in zip(sink.sources, sink.sources[1:]):
        assert later.start_time >= earlier.end_time - 1e-9


def test_handle_ids_are_unique_and_increasing():
    pipeline, _, _ = _pipeline()

    ids = [pipeline.enqueue(_pcm(0.01)).handle_id for _ in range(3)]  # type: ignore[union-attr]

    assert ids == sorted(set(ids))
    assert pipeline.active_handle_ids() == tuple(ids)


def test_foreign_rate_chunk_is_resampled_to_sink_rate():
    pipeline, sink, _ = _pipeline()

    scheduled = pipeline.enqueue(_pcm(0.5, sample_rate_hz=16_000), sample_rate_hz=16_000)

    assert scheduled is not None
    assert scheduled.duration_s == pytest.approx(0.5)
    chunk = sink.sources[0].chunk
    assert chunk.sample_rate_hz == 24_000
    assert chunk.num_frames == 12_000


def test_foreign_rate_chunks_stay_back_to_back():
    pipeline, sink, _ = _pipeline()

    pipeline.enqueue(_pcm(0.5, sample_rate_hz=16_000), sample_rate_hz=16_000)
    second = pipeline.enqueue(_pcm(0.3, sample_rate_hz=16_000), sample_rate_hz=16_000)

    assert second is not None
    assert second.start_time == pytest.approx(0.5)
    first = sink.sources[0]
    assert first.start_time + first.chunk.num_frames / sink.sample_rate_hz == pytest.approx(0.5)


def test_enqueue_reports_signed_level():
    pipeline, _, levels = _pipeline()

    pipeline.enqueue(_pcm(0.05, value=-3277))

    assert levels == [pytest.approx(0.5, abs=1e-3)]


# ---------------------------------------------------------------------
# Completion / interruption
# ---------------------------------------------------------------------

def test_natural_completion_drops_only_that_handle():
    pipeline, sink, _ = _pipeline()
    pipeline.enqueue(_pcm(0.1))
    second = pipeline.enqueue(_pcm(0.1))

    sink.sources[0].on_ended()

    assert second is not None
    assert pipeline.active_handle_ids() == (second.handle_id,)
    assert pipeline.next_playback_time == pytest.approx(0.2)


def test_interrupt_stops_everything_and_resets_cursor():
    pipeline, sink, _ = _pipeline()
    pipeline.enqueue(_pcm(0.5))
    pipeline.enqueue(_pcm(0.3))

    stopped = pipeline.interrupt()

    assert stopped == 2
    assert all(source.stopped for source in sink.sources)
    assert len(pipeline) == 0
    assert pipeline.next_playback_time == 0.0

    sink.now = 1.0
    after = pipeline.enqueue(_pcm(0.1))
    assert after is not None
    assert after.start_time == pytest.approx(1.0)


def test_completion_after_interrupt_is_ignored():
    pipeline, sink, _ = _pipeline()
    pipeline.enqueue(_pcm(0.1))
    pipeline.interrupt()
    fresh = pipeline.enqueue(_pcm(0.1))

    sink.sources[0].on_ended()

    assert fresh is not None
    assert pipeline.active_handle_ids() == (fresh.handle_id,)


def test_interrupt_with_nothing_playing():
    pipeline, _, _ = _pipeline()

    assert pipeline.interrupt() == 0


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_stop_closes_sink_and_is_idempotent():
    pipeline, sink, _ = _pipeline()
    pipeline.enqueue(_pcm(0.1))

    pipeline.stop()
    pipeline.stop()

    assert sink.closed
    assert sink.sources[0].stopped
    assert not pipeline.running
    assert len(pipeline) == 0


def test_enqueue_without_sink_is_dropped():
    pipeline = PlaybackPipeline(on_level=lambda _: None)

    assert pipeline.enqueue(_pcm(0.1)) is None


def test_decode_chunk_deinterleaves_stereo():
    pcm = np.array([100, -100, 200, -200], dtype="<i2").tobytes()

    chunk = decode_chunk(pcm, 24_000, 2)

    assert chunk.samples.shape == (2, 2)
    assert chunk.num_frames == 2


def test_decode_chunk_rejects_bad_rate():
    with pytest.raises(ValueError):
        decode_chunk(b"\x00\x00", 0, 1)
