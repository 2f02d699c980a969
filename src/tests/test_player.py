import asyncio

import pytest

from jukebox.core.player import PlaybackPipeline
from jukebox.utils.exceptions import PipelineError, PipelineErrorKind

FRAME = b'\x00\x10' * 4


class FakeSource:
    def __init__(self, frames=3, error=None):
        self.frames = frames
        self.error = error
        self.read_count = 0
        self.closed = 0

    async def read_frame(self):
        if self.read_count >= self.frames:
            if self.error is not None:
                raise self.error
            return None
        self.read_count += 1
        return FRAME

    async def close(self):
        self.closed += 1


class EndlessSource(FakeSource):
    async def read_frame(self):
        self.read_count += 1
        await asyncio.sleep(0)
        return FRAME


class NumberedSource(FakeSource):
    """Every frame carries its own sequence number."""

    async def read_frame(self):
        if self.frames is not None and self.read_count >= self.frames:
            return None
        number = self.read_count
        self.read_count += 1
        await asyncio.sleep(0)
        return number.to_bytes(2, 'little') * 4


def frame_number(frame):
    return int.from_bytes(frame[:2], 'little')


def make_pipeline(source, sink, frame_duration=0.001, **kwargs):
    loop = asyncio.get_running_loop()
    finished = loop.create_future()
    pipeline = PlaybackPipeline(
        source,
        sink,
        lambda: 100,
        on_finished=lambda error: finished.set_result(error),
        frame_duration=frame_duration,
        **kwargs,
    )
    return pipeline, finished


@pytest.mark.asyncio
async def test_delivers_every_frame_then_reports_exhausted():
    sent = []
    pipeline, finished = make_pipeline(FakeSource(frames=5), sent.append)
    pipeline.start()

    assert await asyncio.wait_for(finished, 1) is None
    assert sent == [FRAME] * 5
    assert pipeline.frames_sent == 5
    await pipeline.close()


@pytest.mark.asyncio
async def test_frames_are_paced_in_real_time():
    loop = asyncio.get_running_loop()
    times = []
    pipeline, finished = make_pipeline(
        FakeSource(frames=6), lambda frame: times.append(loop.time()), frame_duration=0.01)
    pipeline.start()
    await asyncio.wait_for(finished, 1)

    # Six frames span five frame periods
    assert times[-1] - times[0] >= 0.045
    await pipeline.close()


@pytest.mark.asyncio
async def test_buffered_frames_are_delivered_before_the_error():
    sent = []
    error = PipelineError(PipelineErrorKind.STALLED, "no audio")
    pipeline, finished = make_pipeline(FakeSource(frames=3, error=error), sent.append)
    pipeline.start()

    assert await asyncio.wait_for(finished, 1) is error
    assert len(sent) == 3
    await pipeline.close()


@pytest.mark.asyncio
async def test_consecutive_send_failures_end_with_sink_failed():
    def sink(frame):
        raise ConnectionError("not connected")

    pipeline, finished = make_pipeline(EndlessSource(), sink, max_send_failures=3)
    pipeline.start()

    error = await asyncio.wait_for(finished, 1)
    assert error.kind is PipelineErrorKind.SINK_FAILED
    assert pipeline.frames_sent == 0
    await pipeline.close()


@pytest.mark.asyncio
async def test_occasional_send_failure_is_tolerated():
    sent = []
    failures = iter([True, False, True, False, False])

    def flaky_sink(frame):
        if next(failures, False):
            raise ConnectionError("hiccup")
        sent.append(frame)

    pipeline, finished = make_pipeline(FakeSource(frames=5), flaky_sink, max_send_failures=2)
    pipeline.start()

    assert await asyncio.wait_for(finished, 1) is None
    assert len(sent) == 3


@pytest.mark.asyncio
async def test_pause_holds_delivery_until_resume():
    sent = []
    pipeline, finished = make_pipeline(EndlessSource(), sent.append)
    pipeline.start()
    while len(sent) < 2:
        await asyncio.sleep(0.001)

    pipeline.pause()
    assert pipeline.paused
    await asyncio.sleep(0.005)
    count = len(sent)
    await asyncio.sleep(0.02)
    assert len(sent) == count

    pipeline.resume()
    while len(sent) == count:
        await asyncio.sleep(0.001)
    await pipeline.close()
    assert not finished.done()


@pytest.mark.asyncio
async def test_pause_and_resume_neither_drop_nor_repeat_frames():
    sent = []
    pipeline, finished = make_pipeline(NumberedSource(frames=40), sent.append)
    pipeline.start()

    for pause_at in (3, 12, 25):
        while len(sent) < pause_at:
            await asyncio.sleep(0.001)
        pipeline.pause()
        await asyncio.sleep(0.01)
        pipeline.resume()

    assert await asyncio.wait_for(finished, 2) is None
    assert [frame_number(frame) for frame in sent] == list(range(40))
    await pipeline.close()


@pytest.mark.asyncio
async def test_unexpected_source_error_ends_with_decode_failed():
    sent = []
    source = FakeSource(frames=3, error=ConnectionResetError("pipe closed"))
    pipeline, finished = make_pipeline(source, sent.append)
    pipeline.start()

    error = await asyncio.wait_for(finished, 1)
    assert isinstance(error, PipelineError)
    assert error.kind is PipelineErrorKind.DECODE_FAILED
    assert len(sent) == 3
    await pipeline.close()
    assert source.closed == 1


@pytest.mark.asyncio
async def test_close_cancels_without_reporting_and_closes_source_once():
    source = EndlessSource()
    pipeline, finished = make_pipeline(source, lambda frame: None)
    pipeline.start()
    await asyncio.sleep(0.005)

    await pipeline.close()
    await pipeline.close()
    assert source.closed == 1
    assert not finished.done()


@pytest.mark.asyncio
async def test_volume_is_read_for_every_frame():
    sent = []
    levels = iter([100, 50, 0])
    pipeline = PlaybackPipeline(
        FakeSource(frames=3), sent.append, lambda: next(levels), on_finished=lambda error: None,
        frame_duration=0.001,
    )
    pipeline.start()
    while len(sent) < 3:
        await asyncio.sleep(0.001)

    assert sent[0] == FRAME
    assert sent[1] == b'\x00\x08' * 4
    assert sent[2] == bytes(len(FRAME))
    await pipeline.close()
