"""
Unit Tests for the Streaming Throttle

Drives the throttle with a manual clock and a recording sink to check the
phase state machine, both edit gates and the final edit.
"""

import pytest

from sheetqa.core.config.constants import Phase, ThrottleState
from sheetqa.core.exceptions import DeliveryError
from sheetqa.streaming import StreamingThrottle, ThrottleConfig, render_message
from tests.test_fixtures import FakeModel, FakeSink

QUESTION = "東京の人口は?"


def make_throttle(sink, clock, no_sleep, model=None, config=None):
    model = model or FakeModel()
    return StreamingThrottle(
        sink,
        model.generate_once,
        QUESTION,
        config or ThrottleConfig(),
        clock=clock,
        sleep=no_sleep,
    )


@pytest.mark.unit
class TestThrottleConfig:
    def test_thinking_interval_cannot_exceed_response_interval(self):
        with pytest.raises(ValueError):
            ThrottleConfig(response_interval_ms=1000, thinking_interval_ms=2000)

    def test_from_settings(self, settings):
        config = ThrottleConfig.from_settings(settings)

        assert config.response_interval_ms == settings.streaming.STREAM_RESPONSE_INTERVAL_MS
        assert config.thinking_min_chars == settings.streaming.STREAM_THINKING_MIN_CHARS
        assert config.fallback_text == settings.streaming.THINKING_FALLBACK_TEXT


@pytest.mark.unit
class TestStreamingThrottle:
    @pytest.mark.asyncio
    async def test_thinking_then_response_sequence(self, fake_sink, clock, no_sleep):
        """Thinking summary, forced transition edit, gated response edit, final edit."""
        # Arrange
        throttle = make_throttle(fake_sink, clock, no_sleep)

        # Act: thinking passes both thinking gates
        clock.advance(1000)
        await throttle.on_chunk("t" * 250, Phase.THINKING)
        # more thinking right away: interval gate closed
        await throttle.on_chunk("t" * 300, Phase.THINKING)
        # first response chunk: forced
        await throttle.on_chunk("Hello", Phase.RESPONSE)
        # too soon for another response edit
        await throttle.on_chunk(" world", Phase.RESPONSE)
        clock.advance(1500)
        await throttle.on_chunk("!" * 50, Phase.RESPONSE)
        final_text = await throttle.finish()

        # Assert
        expected_response = "Hello world" + "!" * 50
        assert fake_sink.edits == [
            render_message(QUESTION, ":thought_balloon: 要約中"),
            render_message(QUESTION, "Hello"),
            render_message(QUESTION, expected_response),
            render_message(QUESTION, expected_response),
        ]
        assert final_text == expected_response
        assert throttle.edit_count == 4
        assert throttle.state is ThrottleState.DONE

    @pytest.mark.asyncio
    async def test_thinking_gate_requires_min_chars(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)

        clock.advance(5000)
        await throttle.on_chunk("t" * 199, Phase.THINKING)

        assert fake_sink.edits == []

    @pytest.mark.asyncio
    async def test_thinking_gate_requires_interval(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)

        clock.advance(999)
        await throttle.on_chunk("t" * 500, Phase.THINKING)

        assert fake_sink.edits == []

    @pytest.mark.asyncio
    async def test_response_gate_requires_min_chars(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)
        await throttle.on_chunk("first", Phase.RESPONSE)

        clock.advance(10_000)
        await throttle.on_chunk("x" * 10, Phase.RESPONSE)

        assert len(fake_sink.edits) == 1

    @pytest.mark.asyncio
    async def test_thinking_after_response_never_edits(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)
        await throttle.on_chunk("answer", Phase.RESPONSE)

        clock.advance(10_000)
        await throttle.on_chunk("t" * 1000, Phase.THINKING)

        assert fake_sink.edits == [render_message(QUESTION, "answer")]

    @pytest.mark.asyncio
    async def test_final_edit_excludes_thinking_text(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)
        await throttle.on_chunk("secret reasoning", Phase.THINKING)
        await throttle.on_chunk("visible answer", Phase.RESPONSE)

        await throttle.finish()

        assert fake_sink.edits[-1] == render_message(QUESTION, "visible answer")
        assert all("secret reasoning" not in edit for edit in fake_sink.edits)

    @pytest.mark.asyncio
    async def test_missing_phase_counts_as_response(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)

        await throttle.on_chunk("plain", None)

        assert throttle.response_text == "plain"
        assert throttle.state is ThrottleState.AWAITING_RESPONSE

    @pytest.mark.asyncio
    async def test_unknown_phase_counts_as_response(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)

        await throttle.on_chunk("plain", "foo")

        assert throttle.response_text == "plain"
        assert fake_sink.edits == [render_message(QUESTION, "plain")]

    @pytest.mark.asyncio
    async def test_summarizer_failure_shows_fallback(self, fake_sink, clock, no_sleep):
        model = FakeModel(summary_error=RuntimeError("summary down"))
        throttle = make_throttle(fake_sink, clock, no_sleep, model=model)

        clock.advance(1000)
        await throttle.on_chunk("t" * 200, Phase.THINKING)

        assert fake_sink.edits == [render_message(QUESTION, ":thought_balloon: 考え中...")]

    @pytest.mark.asyncio
    async def test_blank_summary_shows_fallback(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep, model=FakeModel(summary="   "))

        clock.advance(1000)
        await throttle.on_chunk("t" * 200, Phase.THINKING)

        assert fake_sink.edits == [render_message(QUESTION, ":thought_balloon: 考え中...")]

    @pytest.mark.asyncio
    async def test_failed_edit_keeps_content_eligible(self, clock, no_sleep):
        """A failed intermediate edit does not advance the emitted length."""
        # Arrange: forced edit ok, next edit fails, the one after succeeds
        sink = FakeSink(edit_results=[True, False, True])
        throttle = make_throttle(sink, clock, no_sleep)
        await throttle.on_chunk("start", Phase.RESPONSE)

        # Act
        clock.advance(1500)
        await throttle.on_chunk("x" * 60, Phase.RESPONSE)
        clock.advance(1500)
        await throttle.on_chunk("y", Phase.RESPONSE)

        # Assert
        assert len(sink.edits) == 3
        assert throttle.edit_count == 2
        assert sink.edits[-1] == render_message(QUESTION, "start" + "x" * 60 + "y")

    @pytest.mark.asyncio
    async def test_final_edit_failure_raises_after_retries(self, clock, no_sleep):
        sink = FakeSink(edit_results=[True, False, False, False])
        throttle = make_throttle(sink, clock, no_sleep)
        await throttle.on_chunk("answer", Phase.RESPONSE)

        with pytest.raises(DeliveryError):
            await throttle.finish()

        assert len(sink.edits) == 4
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_chunk_after_finish_is_rejected(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)
        await throttle.on_chunk("answer", Phase.RESPONSE)
        await throttle.finish()

        with pytest.raises(RuntimeError):
            await throttle.on_chunk("late", Phase.RESPONSE)

    @pytest.mark.asyncio
    async def test_empty_chunks_are_ignored(self, fake_sink, clock, no_sleep):
        throttle = make_throttle(fake_sink, clock, no_sleep)

        await throttle.on_chunk("", Phase.RESPONSE)

        assert fake_sink.edits == []
        assert throttle.state is ThrottleState.AWAITING_THINKING
