import threading

import pytest

from voice_assistant.core.config import VADConfig
from voice_assistant.core.errors import MalformedFrameError, SessionClosedError
from voice_assistant.core.session import SessionState
from voice_assistant.core.vad import EventKind, VoiceActivityDetector


def run_frames(det, frames):
    """Feed frames until the session ends; return (index, event) pairs."""
    events = []
    for frame in frames:
        event = det.process_frame(frame)
        if event is not None:
            events.append((event.frame_index, event))
        if det.session.is_terminal:
            break
    return events


def levels_of(utterance):
    return [int(f[0]) for f in utterance.frames]


def test_warm_up_never_triggers(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=10), clock=clock)
    session = det.start_session()
    for _ in range(9):
        assert det.process_frame(make_frame(8000)) is None
        assert session.state is SessionState.ADAPTING
    assert len(session.buffer.pre_roll) == 9
    # the frame that completes the warm-up is evaluated
    event = det.process_frame(make_frame(8000))
    assert event.kind is EventKind.VOICE_DETECTED


def test_single_trigger_per_rising_edge(make_frame, clock):
    seen = []
    det = VoiceActivityDetector(
        VADConfig(adaptation_frames=0), on_event=seen.append, clock=clock
    )
    session = det.start_session()
    for _ in range(5):
        det.process_frame(make_frame(20))
    for _ in range(40):
        det.process_frame(make_frame(6000))

    assert [e.kind for e in seen] == [EventKind.VOICE_DETECTED]
    assert seen[0].frame_index == 6
    assert session.state is SessionState.SPEAKING


def test_ambient_level_frozen_at_onset(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=0), clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(30))
    det.process_frame(make_frame(6000))
    ambient = session.noise.ambient_level
    assert ambient == session.noise.long_term_level
    for _ in range(20):
        det.process_frame(make_frame(6000))
    assert session.noise.ambient_level == ambient
    assert session.noise.long_term_level > ambient


def test_pre_roll_then_loud_frames(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=5), clock=clock)
    det.start_session()
    frames = [make_frame(10)] * 10 + [make_frame(5000)] * 3 + [make_frame(0)] * 200
    events = run_frames(det, frames)

    assert [e.kind for _, e in events] == [
        EventKind.VOICE_DETECTED,
        EventKind.UTTERANCE_READY,
    ]
    assert events[0][0] == 11
    levels = levels_of(events[1][1].utterance)
    assert levels[:10] == [10] * 10
    assert levels[10:13] == [5000] * 3
    assert set(levels[13:]) == {0}
    assert len(levels[13:]) > det.config.silence_hysteresis


def test_pre_roll_keeps_only_most_recent_frames(make_frame, clock):
    cfg = VADConfig(adaptation_frames=5)
    det = VoiceActivityDetector(cfg, clock=clock)
    det.start_session()
    quiet = [make_frame(level) for level in range(1, 31)]
    frames = quiet + [make_frame(5000)] * 2 + [make_frame(0)] * 200
    events = run_frames(det, frames)

    utterance = events[-1][1].utterance
    cap = cfg.pre_roll_capacity
    assert levels_of(utterance)[:cap] == list(range(31 - cap, 31))
    assert levels_of(utterance)[cap : cap + 2] == [5000, 5000]


def test_hysteresis_resets_on_loud_frame(make_frame, clock):
    cfg = VADConfig(adaptation_frames=0, current_alpha=0.0, silence_hysteresis=10)
    det = VoiceActivityDetector(cfg, clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(5000))
    assert session.state is SessionState.SPEAKING

    for _ in range(cfg.silence_hysteresis - 1):
        det.process_frame(make_frame(0))
    assert session.silence_frames == cfg.silence_hysteresis - 1

    det.process_frame(make_frame(5000))
    assert session.silence_frames == 0
    assert session.state is SessionState.SPEAKING


def test_hysteresis_completes_after_count_plus_one(make_frame, clock):
    cfg = VADConfig(adaptation_frames=0, current_alpha=0.0, silence_hysteresis=10)
    det = VoiceActivityDetector(cfg, clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(5000))

    for _ in range(cfg.silence_hysteresis):
        assert det.process_frame(make_frame(0)) is None
    assert session.state is SessionState.SPEAKING

    event = det.process_frame(make_frame(0))
    assert event.kind is EventKind.UTTERANCE_READY
    assert session.state is SessionState.COMPLETED
    assert event.utterance.num_frames == 1 + cfg.silence_hysteresis + 1
    assert session.signal.wait(timeout=0) is SessionState.COMPLETED


def test_end_to_end_reference_scenario(make_frame, clock):
    cfg = VADConfig()
    det = VoiceActivityDetector(cfg, clock=clock)
    det.start_session()
    frames = [make_frame(50)] * 50 + [make_frame(5000)] * 20 + [make_frame(50)] * 500
    events = run_frames(det, frames)

    (start_idx, start), (end_idx, end) = events
    assert start.kind is EventKind.VOICE_DETECTED
    assert start_idx == 51
    assert end.kind is EventKind.UTTERANCE_READY

    levels = levels_of(end.utterance)
    cap = cfg.pre_roll_capacity
    assert levels[:cap] == [50] * cap
    assert levels[cap : cap + 20] == [5000] * 20
    tail = levels[cap + 20 :]
    assert set(tail) == {50}
    assert len(tail) >= cfg.silence_hysteresis + 1
    assert end_idx == start_idx + 20 + len(tail) - 1


def test_end_to_end_with_instant_current_level(make_frame, clock):
    cfg = VADConfig(current_alpha=0.0)
    det = VoiceActivityDetector(cfg, clock=clock)
    det.start_session()
    frames = [make_frame(50)] * 50 + [make_frame(5000)] * 20 + [make_frame(0)] * 100
    events = run_frames(det, frames)

    assert events[0][0] == 51
    hysteresis = cfg.silence_hysteresis
    assert events[1][0] == 70 + hysteresis + 1
    assert events[1][1].utterance.num_frames == cfg.pre_roll_capacity + 20 + hysteresis + 1


def test_timeout_sequencing(make_frame, clock):
    seen = []
    cfg = VADConfig(adaptation_frames=0, no_voice_timeout_s=5.0)
    det = VoiceActivityDetector(cfg, on_event=seen.append, clock=clock)
    session = det.start_session()

    for _ in range(100):
        clock.advance(0.5)
        det.process_frame(make_frame(10))
        if session.is_terminal:
            break

    assert [(e.kind, e.frame_index) for e in seen] == [
        (EventKind.REPROMPT_REQUESTED, 11),
        (EventKind.SESSION_ABORTED, 22),
    ]
    assert session.state is SessionState.ABORTED
    assert session.utterance is None
    assert session.signal.wait(timeout=0) is SessionState.ABORTED


def test_timeout_ignored_once_speaking(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=0), clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(6000))
    for _ in range(5):
        clock.advance(100.0)
        det.process_frame(make_frame(6000))
    assert session.state is SessionState.SPEAKING


def test_malformed_frame_is_an_assertion(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(), clock=clock)
    det.start_session()
    with pytest.raises(MalformedFrameError):
        det.process_frame(make_frame(10, size=100))
    with pytest.raises(AssertionError):
        det.process_frame(make_frame(10, size=1024))


def test_frames_after_terminal_state_are_rejected(make_frame, clock):
    cfg = VADConfig(adaptation_frames=0, current_alpha=0.0, silence_hysteresis=0)
    det = VoiceActivityDetector(cfg, clock=clock)
    det.start_session()
    det.process_frame(make_frame(5000))
    det.process_frame(make_frame(0))
    assert det.session.state is SessionState.COMPLETED
    with pytest.raises(SessionClosedError):
        det.process_frame(make_frame(0))


def test_process_without_session(make_frame):
    det = VoiceActivityDetector(VADConfig())
    with pytest.raises(SessionClosedError):
        det.process_frame(make_frame(0))


def test_cancel_never_produces_utterance(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=0), clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(6000))
    assert det.cancel()
    assert session.state is SessionState.CANCELLED
    assert session.utterance is None
    assert session.signal.wait(timeout=0) is SessionState.CANCELLED
    assert not det.cancel()


def test_new_session_starts_clean(make_frame, clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=0), clock=clock)
    first = det.start_session()
    det.process_frame(make_frame(6000))
    second = det.start_session()

    assert first.state is SessionState.CANCELLED
    assert second is not first
    assert second.state is SessionState.ADAPTING
    assert second.noise.long_term_level == 0.0
    assert len(second.buffer) == 0
    assert not second.signal.is_set()


def test_cancel_from_other_thread_does_not_wait_for_frame(make_frame, clock):
    cfg = VADConfig(adaptation_frames=0, current_alpha=0.0)
    results = []

    def on_event(event):
        # still inside process_frame on this thread
        if event.kind is EventKind.VOICE_DETECTED:
            worker = threading.Thread(target=lambda: results.append(det.cancel()))
            worker.start()
            worker.join(timeout=1.0)
            results.append(worker.is_alive())

    det = VoiceActivityDetector(cfg, on_event=on_event, clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(5000))

    assert results == [True, False]
    assert session.signal.wait(timeout=0) is SessionState.CANCELLED
    with pytest.raises(SessionClosedError):
        det.process_frame(make_frame(5000))


def test_completion_after_cancel_yields_nothing(make_frame, clock):
    cfg = VADConfig(adaptation_frames=0, current_alpha=0.0, silence_hysteresis=0)
    det = VoiceActivityDetector(cfg, clock=clock)
    session = det.start_session()
    det.process_frame(make_frame(5000))

    session.cancelled.set()  # cancel() raced in mid-frame
    assert not session.finish(SessionState.COMPLETED)
    assert session.utterance is None
    assert not session.signal.is_set()


def test_signal_lost_to_cancel_is_not_reported(clock):
    det = VoiceActivityDetector(VADConfig(adaptation_frames=0), clock=clock)
    session = det.start_session()
    session.signal.fire(SessionState.CANCELLED)

    assert not session.finish(SessionState.ABORTED)
    assert session.state is SessionState.CANCELLED
    assert session.signal.wait(timeout=0) is SessionState.CANCELLED
