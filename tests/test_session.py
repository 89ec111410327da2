"""
==============================================================================
Decode Session Tests
==============================================================================

Single-fire success, failure recovery and reset behaviour of DecodeSession.

==============================================================================
"""

import pytest

from urscanner.decoder import DecodeError, SupportedType
from urscanner.session import DecodeSession, SessionState


@pytest.fixture
def session(recorder, decoder_factory) -> DecodeSession:
    return DecodeSession(
        SupportedType.BYTES,
        recorder.on_success,
        recorder.on_failure,
        decoder_factory=decoder_factory,
    )


class TestCompletion:
    """Tests for in-order ingestion of a completable sequence."""

    def test_two_part_sequence_succeeds_once(self, session, recorder, expected_payload):
        """Both parts in order resolve to P exactly once."""
        session.ingest("part1of2:AAA")
        assert recorder.successes == []
        session.ingest("part2of2:BBB")

        assert recorder.successes == [expected_payload]
        assert recorder.failures == []
        assert session.state is SessionState.SUCCEEDED
        assert session.has_succeeded is True

    def test_out_of_order_parts_still_resolve(self, session, recorder, expected_payload):
        session.ingest("part2of2:BBB")
        session.ingest("part1of2:AAA")
        assert recorder.successes == [expected_payload]

    def test_absent_fragment_is_noop(self, session, recorder):
        session.ingest(None)
        assert recorder.events == []
        assert session.progress == 0.0

    def test_empty_fragment_reaches_decoder(self, session, recorder):
        session.ingest("part1of2:AAA")
        session.ingest("")
        assert recorder.events == ["failure"]
        assert session.progress == 0.0

    def test_progress_tracks_decoder(self, session):
        session.ingest("part1of2:AAA")
        assert session.progress == pytest.approx(0.5)


class TestFailureRecovery:
    """Tests for malformed fragments and resolution errors."""

    def test_garbage_then_valid_sequence(self, session, recorder, expected_payload):
        """One failure for the garbage, then one success."""
        for fragment in ["garbage", "part1of2:AAA", "part2of2:BBB"]:
            session.ingest(fragment)

        assert recorder.events == ["failure", "success"]
        assert recorder.successes == [expected_payload]
        assert recorder.failures[0].startswith("Error when receiving UR:")

    def test_malformed_between_parts_resets_partial_state(self, session, recorder, expected_payload):
        session.ingest("part1of2:AAA")
        session.ingest("not-a-part")
        # part1 was discarded by the reset, so part2 alone is not enough
        session.ingest("part2of2:BBB")
        assert recorder.successes == []
        assert len(recorder.failures) == 1

        session.ingest("part1of2:AAA")
        session.ingest("part2of2:BBB")
        assert recorder.successes == [expected_payload]
        assert len(recorder.failures) == 1

    def test_inconsistent_fragment_reports_and_resets(self, session, recorder):
        session.ingest("part1of2:AAA")
        session.ingest("part1of3:CCC")
        assert len(recorder.failures) == 1
        assert session.progress == 0.0

    def test_resolve_error_takes_failure_path(self, recorder):
        class MismatchDecoder:
            def __init__(self, target):
                pass

            def receive(self, fragment):
                pass

            def is_complete(self):
                return True

            def progress(self):
                return 1.0

            def resolve(self, target):
                raise DecodeError("type mismatch")

        session = DecodeSession(
            SupportedType.CRYPTO_HDKEY,
            recorder.on_success,
            recorder.on_failure,
            decoder_factory=MismatchDecoder,
        )
        session.ingest("anything")
        assert recorder.successes == []
        assert recorder.failures == ["Error when receiving UR: type mismatch"]
        assert session.state is SessionState.AWAITING

    def test_unexpected_decoder_exception_is_converted(self, recorder):
        class BrokenDecoder:
            def __init__(self, target):
                pass

            def receive(self, fragment):
                raise IndexError("boom")

        session = DecodeSession(
            SupportedType.BYTES,
            recorder.on_success,
            recorder.on_failure,
            decoder_factory=BrokenDecoder,
        )
        session.ingest("x")
        assert recorder.failures == ["Error when receiving UR: boom"]


class TestSingleFire:
    """Tests for the at-most-once success guarantee."""

    @pytest.mark.parametrize(
        "extra",
        [
            ["part2of2:BBB"],
            ["part1of2:AAA", "part2of2:BBB"],
            ["part1of2:AAA", "part1of2:AAA"],
        ],
    )
    def test_more_valid_fragments_after_success(self, session, recorder, extra):
        session.ingest("part1of2:AAA")
        session.ingest("part2of2:BBB")
        for fragment in extra:
            session.ingest(fragment)
        assert len(recorder.successes) == 1
        assert recorder.failures == []

    def test_malformed_after_success_does_not_refire(self, session, recorder):
        session.ingest("part1of2:AAA")
        session.ingest("part2of2:BBB")
        session.ingest("garbage")
        session.ingest("part2of2:BBB")
        assert len(recorder.successes) == 1
        assert len(recorder.failures) == 1

    def test_success_fires_once_across_interleaved_failures(self, session, recorder):
        for fragment in ["bad", "part1of2:AAA", "bad", "part1of2:AAA", "part2of2:BBB", "part2of2:BBB"]:
            session.ingest(fragment)
        assert len(recorder.successes) == 1
        assert len(recorder.failures) == 2


class TestReset:
    """Tests for explicit reset."""

    def test_reset_behaves_like_new_session(self, session, recorder, expected_payload):
        session.ingest("part1of2:AAA")
        session.ingest("part2of2:BBB")
        session.reset()
        assert session.state is SessionState.AWAITING

        session.ingest("part1of2:AAA")
        assert len(recorder.successes) == 1
        session.ingest("part2of2:BBB")
        assert recorder.successes == [expected_payload, expected_payload]

    def test_reset_discards_partial_state(self, session, recorder):
        session.ingest("part1of3:AAA")
        session.reset()
        session.ingest("part1of2:AAA")
        session.ingest("part2of2:BBB")
        assert len(recorder.successes) == 1
        assert recorder.failures == []

    def test_reset_replaces_decoder_instance(self, session, decoder_factory):
        before = decoder_factory.instances
        session.reset()
        session.reset()
        assert decoder_factory.instances == before + 2
        assert session.progress == 0.0
