"""Tests for the route sampler's retention rules."""

import pytest

from kinematics import Position, current_speed_kmh
from sampler import RetainReason, SamplerState, sample_fix
from tests.gps_test_fixtures import BASE_MS, EXPECTED_REASONS, RIDE


def _sample_all(fixes, thresholds=None):
    state = SamplerState()
    previous = None
    for fix in fixes:
        state, _ = sample_fix(state, fix, previous, current_speed_kmh(fix, previous), thresholds)
        previous = fix
    return state


def _fix(lat, lng, seconds, speed_kmh):
    return Position(lat, lng, speed=speed_kmh / 3.6, timestamp=BASE_MS + seconds * 1000)


# =====================================================================
# Individual rules
# =====================================================================

class TestRetentionRules:
    def test_first_point_is_start(self):
        state, point = sample_fix(SamplerState(), RIDE[0], None, 10.0)
        assert point is not None
        assert point.reason is RetainReason.START
        assert state.points == (point,)

    def test_slow_straight_short_hops_keep_only_first(self):
        # ~11 m every 10 s heading north-ish: below every threshold
        fixes = [_fix(52.52 + i * 0.0001, 13.405 + i * 0.00001, i * 10, 4.0) for i in range(9)]
        state = _sample_all(fixes)
        assert len(state.points) == 1
        assert state.points[0].reason is RetainReason.START

    def test_stop_after_thirty_seconds(self):
        fixes = [
            _fix(52.52, 13.405, 0, 0.0),
            _fix(52.52, 13.405, 15.0, 0.0),
            _fix(52.52, 13.405, 30.001, 0.0),
        ]
        state = _sample_all(fixes)
        assert [p.reason for p in state.points] == [RetainReason.START, RetainReason.STOP]
        assert state.points[-1].timestamp == fixes[-1].timestamp

    def test_exactly_thirty_seconds_is_not_a_stop(self):
        fixes = [_fix(52.52, 13.405, 0, 0.0), _fix(52.52, 13.405, 30, 0.0)]
        state = _sample_all(fixes)
        assert len(state.points) == 1

    def test_moving_resets_stopped_duration(self):
        fixes = [
            _fix(52.52, 13.405, 0, 0.0),
            _fix(52.52, 13.405, 20, 0.0),
            _fix(52.52001, 13.405, 21, 5.0),  # moving again
            _fix(52.52001, 13.405, 41, 0.0),
        ]
        state = _sample_all(fixes)
        assert len(state.points) == 1
        assert state.stopped_ms == 20_000

    def test_stop_resets_after_retention(self):
        fixes = [_fix(52.52, 13.405, s, 0.0) for s in (0, 20, 40, 50)]
        state = _sample_all(fixes)
        assert [p.reason for p in state.points] == [RetainReason.START, RetainReason.STOP]
        assert state.stopped_ms == 10_000

    def test_paused_time_is_not_stopped_time(self):
        first, second = _fix(52.52, 13.405, 0, 0.0), _fix(52.52, 13.405, 620, 0.0)
        state, _ = sample_fix(SamplerState(), first, None, 0.0)
        state, point = sample_fix(state, second, first, 0.0, paused_ms=600_000)
        assert point is None
        assert state.stopped_ms == 20_000

    def test_direction_change(self):
        fixes = [
            _fix(52.5200, 13.4050, 0, 10.0),
            _fix(52.5201, 13.4050, 5, 10.0),           # north
            _fix(52.5202, 13.4050, 10, 10.0),          # north
            _fix(52.5202, 13.4052, 15, 10.0),          # east: 90 degree turn
        ]
        state = _sample_all(fixes)
        assert [p.reason for p in state.points] == [RetainReason.START, RetainReason.DIRECTION_CHANGE]
        assert state.last_bearing == pytest.approx(90.0)

    def test_distance(self):
        fixes = [_fix(52.5200, 13.4050, 0, 20.0), _fix(52.5210, 13.4050, 20, 20.0)]  # ~111 m
        state = _sample_all(fixes)
        assert [p.reason for p in state.points] == [RetainReason.START, RetainReason.DISTANCE]

    def test_time(self):
        fixes = [
            _fix(52.52000, 13.405, 0, 2.0),
            _fix(52.52005, 13.405, 60, 2.0),
            _fix(52.52010, 13.405, 120.5, 2.0),
        ]
        state = _sample_all(fixes)
        assert [p.reason for p in state.points] == [RetainReason.START, RetainReason.TIME]

    def test_first_match_wins(self):
        # A 180 degree turn that also jumps 200 m is recorded as a direction change
        fixes = [
            _fix(52.5200, 13.4050, 0, 10.0),
            _fix(52.5201, 13.4050, 5, 10.0),
            _fix(52.5183, 13.4050, 10, 10.0),
        ]
        state = _sample_all(fixes)
        assert state.points[-1].reason is RetainReason.DIRECTION_CHANGE

    def test_thresholds_override(self):
        fixes = [_fix(52.5200, 13.4050, 0, 20.0), _fix(52.5205, 13.4050, 10, 20.0)]  # ~56 m
        assert len(_sample_all(fixes).points) == 1
        assert len(_sample_all(fixes, {"sample_distance_km": 0.05}).points) == 2

    def test_dropped_fix_keeps_points(self):
        state, _ = sample_fix(SamplerState(), RIDE[0], None, 10.0)
        new_state, point = sample_fix(state, RIDE[1], RIDE[0], 10.0)
        assert point is None
        assert new_state.points == state.points


# =====================================================================
# Full ride
# =====================================================================

class TestRide:
    def test_expected_reasons(self):
        state = _sample_all(RIDE)
        assert [p.reason.value for p in state.points] == EXPECTED_REASONS

    def test_points_are_subset_of_fixes_in_order(self):
        state = _sample_all(RIDE)
        stamps = [f.timestamp for f in RIDE]
        kept = [p.timestamp for p in state.points]
        assert kept == sorted(kept)
        assert set(kept) <= set(stamps)

    def test_route_point_serialization(self):
        state = _sample_all(RIDE)
        d = state.points[-1].to_dict()
        assert d["reason"] == "stop"
        assert set(d) == {"lat", "lng", "timestamp", "speed", "reason"}
