import pytest

from arcmon import decoder as decoder_mod
from arcmon.decoder import decode_line
from arcmon.state import ActiveTimeSource, ChangeSummary, SessionState


def _flags(change: ChangeSummary):
    return {k for k, v in vars(change).items() if v}


@pytest.fixture
def fixed_clock(monkeypatch):
    t = {"now": 1_700_000_000.0}
    monkeypatch.setattr(decoder_mod, "wall_s", lambda: t["now"], raising=True)
    return t


def test_empty_line_changes_nothing():
    st = SessionState(stage=2, cumulative_total=10, active_time_seconds=1.5)
    change = decode_line(st, "")
    assert _flags(change) == set()
    assert st == SessionState(stage=2, cumulative_total=10, active_time_seconds=1.5)


def test_control_only_line_is_empty():
    st = SessionState(stage=4)
    assert _flags(decode_line(st, b"\x00\x01\r\n\x1b")) == set()
    assert st.stage == 4


def test_reset_marker_restores_defaults(fixed_clock):
    st = SessionState(
        stage=5,
        cumulative_total=999,
        active_time_seconds=42.0,
        active_time_source=ActiveTimeSource.DEVICE_REPORTED,
        last_update_timestamp=123.0,
    )
    change = decode_line(st, "*** SYSTEM RESET OK ***")
    assert _flags(change) == {"system_reset", "session_reset"}
    assert st == SessionState()


def test_reset_marker_wins_over_live_fields():
    st = SessionState()
    change = decode_line(st, "[Live] SYSTEM RESET OK Stage: 3 Total: 50")
    assert _flags(change) == {"system_reset", "session_reset"}
    assert st.stage == 0
    assert st.cumulative_total == 0


def test_live_line_updates_stage_and_total(fixed_clock):
    st = SessionState()
    change = decode_line(st, "[Live] Stage: 3 Total: 120 Wait: 50 ms")
    assert _flags(change) == {"stage_changed", "total_changed"}
    assert st.stage == 3
    assert st.cumulative_total == 120
    assert st.last_update_timestamp == fixed_clock["now"]
    assert st.active_time_seconds == 0.0


def test_live_marker_uppercase_variant():
    st = SessionState()
    decode_line(st, "[LIVE] Stage: 2 Total: 7")
    assert (st.stage, st.cumulative_total) == (2, 7)


def test_live_marker_other_case_is_not_live():
    st = SessionState()
    change = decode_line(st, "[live] Stage: 2 Total: 7")
    assert _flags(change) == set()
    assert st == SessionState()


def test_same_stage_and_total_is_noop(fixed_clock):
    st = SessionState(stage=3, cumulative_total=120, last_update_timestamp=5.0)
    change = decode_line(st, "[Live] Stage: 3 Total: 120")
    assert _flags(change) == set()
    assert st.last_update_timestamp == 5.0


def test_rollback_clobbers_stage_from_same_line(fixed_clock):
    st = SessionState(stage=1, cumulative_total=5, active_time_seconds=9.0, last_update_timestamp=1.0)
    change = decode_line(st, "[Live] Stage: 1 Total: 3")
    assert change.session_reset is True
    assert change.total_changed is True
    assert st.stage == 0
    assert st.cumulative_total == 3
    assert st.active_time_seconds == 0.0
    # Reseeding after a rollback does not count as an update.
    assert st.last_update_timestamp is None


def test_rollback_after_stage_change_still_reports_stage_changed():
    st = SessionState(stage=1, cumulative_total=5)
    change = decode_line(st, "[Live] Stage: 4 Total: 2")
    assert change.stage_changed and change.session_reset
    assert st.stage == 0


def test_live_line_ignores_duration_fields():
    st = SessionState()
    change = decode_line(st, "[Live] Stage: 1 Duration: 1500 Active Time: 9")
    assert change.active_changed is False
    assert st.active_time_seconds == 0.0
    assert st.cumulative_total == 0


def test_duration_accumulates():
    st = SessionState()
    decode_line(st, "[STAGE REPORT] Stage 1 Duration: 1500 ms")
    change = decode_line(st, "[STAGE REPORT] Stage 2 Duration: 1500 ms")
    assert change.active_changed is True
    assert st.active_time_seconds == pytest.approx(3.0)
    assert st.active_time_source is ActiveTimeSource.DERIVED


def test_active_time_overwrites():
    st = SessionState()
    decode_line(st, "Duration: 1500")
    decode_line(st, "Duration: 1500")
    change = decode_line(st, "[TOTAL SUMMARY] Active Time: 12.345 s")
    assert change.active_changed is True
    assert st.active_time_seconds == 12.345
    assert st.active_time_source is ActiveTimeSource.DEVICE_REPORTED


def test_duration_then_active_time_resumes_accumulating():
    st = SessionState()
    decode_line(st, "Active Time: 10")
    decode_line(st, "Duration: 500")
    assert st.active_time_seconds == pytest.approx(10.5)
    assert st.active_time_source is ActiveTimeSource.DERIVED


def test_duration_takes_priority_over_active_time():
    st = SessionState(active_time_seconds=1.0)
    decode_line(st, "Duration: 2000 Active Time: 99")
    assert st.active_time_seconds == pytest.approx(3.0)
    assert st.active_time_source is ActiveTimeSource.DERIVED


def test_summary_line_sets_active_time_and_grand_total(fixed_clock):
    st = SessionState(cumulative_total=100)
    change = decode_line(st, "[TOTAL SUMMARY] Active Time: 7.5 s Grand Total: 150")
    assert _flags(change) == {"active_changed", "total_changed"}
    assert st.active_time_seconds == 7.5
    assert st.cumulative_total == 150
    assert st.last_update_timestamp == fixed_clock["now"]


@pytest.mark.parametrize(
    "start_total,value",
    [(0, 120), (50, 120), (120, 120), (200, 120)],
)
def test_grand_total_matches_live_total(fixed_clock, start_total, value):
    via_live = SessionState(stage=2, cumulative_total=start_total, active_time_seconds=4.0)
    via_summary = SessionState(stage=2, cumulative_total=start_total, active_time_seconds=4.0)

    c1 = decode_line(via_live, f"[Live] Total: {value}")
    c2 = decode_line(via_summary, f"Grand Total: {value}")

    assert via_live == via_summary
    assert c1 == c2


def test_negative_values_are_ignored():
    st = SessionState(stage=2, cumulative_total=10, active_time_seconds=1.0)
    assert _flags(decode_line(st, "[Live] Stage: -1 Total: -5")) == set()
    assert _flags(decode_line(st, "Duration: -300 Grand Total: -1")) == set()
    assert _flags(decode_line(st, "Active Time: -4")) == set()
    assert (st.stage, st.cumulative_total, st.active_time_seconds) == (2, 10, 1.0)


def test_unrecognised_line_changes_nothing():
    st = SessionState(stage=1, cumulative_total=3)
    assert _flags(decode_line(st, "Boot v2.1 ready")) == set()
    assert st == SessionState(stage=1, cumulative_total=3)


def test_control_bytes_are_stripped_before_matching():
    st = SessionState()
    decode_line(st, b"\x00[Live]\x07 Stage: 2\x01 Total: 9\r")
    assert (st.stage, st.cumulative_total) == (2, 9)


def test_high_bytes_are_kept_one_to_one():
    st = SessionState()
    decode_line(st, b"[Live] \xb0Stage: 6")
    assert st.stage == 6


def test_negative_duration_still_excludes_active_time():
    st = SessionState(active_time_seconds=1.0)
    change = decode_line(st, "Duration: -5 Active Time: 10")
    assert change.active_changed is False
    assert st.active_time_seconds == 1.0
    assert st.active_time_source is ActiveTimeSource.DERIVED


def test_change_summary_any():
    assert ChangeSummary().any() is False
    assert ChangeSummary(active_changed=True).any() is True
    st = SessionState()
    assert decode_line(st, "[Live] Stage: 1").any() is True
    assert decode_line(st, "[Live] Stage: 1").any() is False
