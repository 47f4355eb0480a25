"""
Regeneration Tests
==================

Stochastic rules that derive the next snapshot.
"""

import random
from datetime import timedelta

import pytest

from roadwatch.models import AccidentMarker, CongestionLevel, LatLng, Severity
from roadwatch.scheduler import RegenerationParams, Regenerator
from roadwatch.store import EntitySnapshot


def _params(**overrides) -> RegenerationParams:
    """Params with every probability switched off unless overridden."""
    values = dict(
        road_mutation=0.0,
        point_mutation=0.0,
        accident_eviction=0.0,
        accident_synthesis=0.0,
    )
    values.update(overrides)
    return RegenerationParams(**values)


class TestRoads:
    """Road level and volume mutation."""

    def test_unmutated_roads_are_unchanged(self, sample_snapshot, rng, now):
        regenerator = Regenerator(_params(), rng)
        result = regenerator.regenerate(sample_snapshot, now)
        assert result.roads == sample_snapshot.roads

    def test_volume_stays_within_bounds(self, sample_snapshot, now):
        regenerator = Regenerator(_params(road_mutation=1.0, volume_delta=80.0), random.Random(3))
        snapshot = sample_snapshot
        for _ in range(200):
            snapshot = regenerator.regenerate(snapshot, now)
            for road in snapshot.roads:
                assert 60.0 <= road.traffic_volume <= 200.0

    def test_adjacent_bias_moves_one_rank(self, rng):
        regenerator = Regenerator(_params(adjacent_bias=1.0), rng)
        for _ in range(50):
            assert regenerator.next_road_level(CongestionLevel.LOW) == CongestionLevel.MEDIUM
            assert regenerator.next_road_level(CongestionLevel.HIGH) == CongestionLevel.MEDIUM

    def test_adjacent_bias_split(self):
        regenerator = Regenerator(_params(adjacent_bias=0.6), random.Random(11))
        trials = 4000
        jumps = sum(
            regenerator.next_road_level(CongestionLevel.LOW) == CongestionLevel.HIGH
            for _ in range(trials)
        )
        # HIGH from LOW is only reachable through the uniform branch: 0.4 * 1/3
        assert jumps / trials == pytest.approx(0.4 / 3, abs=0.03)

    def test_mutation_rate(self, sample_snapshot):
        regenerator = Regenerator(_params(road_mutation=0.5), random.Random(11))
        road = sample_snapshot.roads[0]
        trials = 4000
        mutated = sum(regenerator.mutate_road(road) is not road for _ in range(trials))
        assert mutated / trials == pytest.approx(0.5, abs=0.03)


class TestCongestionPoints:
    """Point level mutation."""

    def test_mutation_always_changes_level(self, sample_snapshot, rng, now):
        regenerator = Regenerator(_params(point_mutation=1.0), rng)
        later = now + timedelta(minutes=1)
        result = regenerator.regenerate(sample_snapshot, later)

        for before, after in zip(sample_snapshot.congestion_points, result.congestion_points):
            assert after.level != before.level
            assert after.updated_at == later
            assert after.id == before.id

    def test_mutation_rate_and_level_split(self, sample_snapshot, now):
        regenerator = Regenerator(_params(point_mutation=0.3), random.Random(11))
        point = next(
            p for p in sample_snapshot.congestion_points if p.level == CongestionLevel.MEDIUM
        )
        trials = 4000
        results = [regenerator.mutate_congestion_point(point, now) for _ in range(trials)]
        mutated = [r for r in results if r is not point]

        assert len(mutated) / trials == pytest.approx(0.3, abs=0.03)
        to_low = sum(r.level == CongestionLevel.LOW for r in mutated)
        to_high = sum(r.level == CongestionLevel.HIGH for r in mutated)
        assert to_low + to_high == len(mutated)
        assert to_low / len(mutated) == pytest.approx(0.5, abs=0.05)


class TestAccidents:
    """Eviction and synthesis."""

    def test_eviction_drops_oldest(self, sample_snapshot, rng, now):
        regenerator = Regenerator(_params(accident_eviction=1.0), rng)
        result = regenerator.regenerate(sample_snapshot, now)

        # acc2 (road works, 8 hours old) is the oldest seed incident
        assert [a.id for a in result.accidents] == ["acc1", "acc3"]

    def test_synthesis_places_marker_on_a_road(self, sample_snapshot, rng, now):
        regenerator = Regenerator(_params(accident_synthesis=1.0, high_severity=1.0), rng)
        result = regenerator.regenerate(sample_snapshot, now)

        assert len(result.accidents) == len(sample_snapshot.accidents) + 1
        marker = result.accidents[-1]
        assert marker.severity == Severity.HIGH
        assert marker.created_at == now
        assert marker.estimated_clear_at == now + timedelta(minutes=60)
        assert marker.id.startswith("acc-")

        lats = [p.lat for road in sample_snapshot.roads for p in road.path]
        lngs = [p.lng for road in sample_snapshot.roads for p in road.path]
        assert min(lats) <= marker.position.lat <= max(lats)
        assert min(lngs) <= marker.position.lng <= max(lngs)

    def test_high_severity_marker_survives_one_tick(self, sample_snapshot, now):
        marker = AccidentMarker(
            id="acc-new",
            position=LatLng(lat=37.86, lng=112.56),
            severity=Severity.HIGH,
            created_at=now,
        )
        snapshot = EntitySnapshot(roads=sample_snapshot.roads, accidents=(marker,))
        regenerator = Regenerator(RegenerationParams(), random.Random(2024))

        trials = 1000
        kept = sum(
            any(a.id == "acc-new" for a in regenerator.regenerate(snapshot, now).accidents)
            for _ in range(trials)
        )
        assert kept / trials >= 0.85

    def test_high_severity_share(self, sample_snapshot, now):
        regenerator = Regenerator(
            _params(accident_synthesis=1.0, high_severity=0.3), random.Random(11)
        )
        trials = 4000
        high = sum(
            regenerator.synthesize_accident(sample_snapshot.roads, now).severity == Severity.HIGH
            for _ in range(trials)
        )
        assert high / trials == pytest.approx(0.3, abs=0.03)


class TestVehicles:
    """Vehicle token spawning."""

    def test_every_road_gets_tokens(self, sample_snapshot):
        assert len(sample_snapshot.vehicles) == 3 * len(sample_snapshot.roads)
        for vehicle in sample_snapshot.vehicles:
            road = sample_snapshot.road(vehicle.road_id)
            assert road is not None
            assert 0 <= vehicle.segment_index < road.leg_count

    def test_existing_tokens_are_kept(self, sample_snapshot, rng, now):
        regenerator = Regenerator(_params(road_mutation=1.0), rng)
        result = regenerator.regenerate(sample_snapshot, now)
        assert result.vehicles == sample_snapshot.vehicles


class TestDeterminism:
    """Seeded runs repeat exactly."""

    def test_same_seed_same_result(self, sample_snapshot, now):
        a = Regenerator(rng=random.Random(99))
        b = Regenerator(rng=random.Random(99))
        snap_a = snap_b = sample_snapshot
        for _ in range(20):
            snap_a = a.regenerate(snap_a, now)
            snap_b = b.regenerate(snap_b, now)
        assert snap_a == snap_b
