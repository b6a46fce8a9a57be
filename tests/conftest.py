"""
Shared fixtures: deterministic randomness, hand-built trucks, a seeded fleet.
"""

from datetime import datetime, timedelta
from itertools import cycle

import pytest

from fleet_monitor.config import Settings
from fleet_monitor.models import Compartment, Destination, Location, Telemetry, TrailPoint, Truck
from fleet_monitor.randomness import RandomSource
from fleet_monitor.simulation import FleetSimulation

T0 = datetime(2025, 1, 15, 8, 0, 0)


class ScriptedSource:
    """Feeds a fixed cycle of values to RandomSource."""

    def __init__(self, *values: float):
        self._values = cycle(values)

    def random(self) -> float:
        return next(self._values)


class SteppingClock:
    """Each call returns a moment 1.5s after the previous one."""

    def __init__(self, start: datetime = T0, step: float = 1.5):
        self.now = start
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


def make_truck(
    status: str = "idle",
    levels=(5000, 5000, 5000, 5000),
    position=(23.5790, 58.3770),
    destination=None,
    start_point=None,
    truck_id: str = "TK900",
) -> Truck:
    compartments = [
        Compartment(id=f"C{i + 1}", fuel_type="Diesel", capacity=5000, current_level=level)
        for i, level in enumerate(levels)
    ]
    lat, lng = position
    return Truck(
        id=truck_id,
        name="Test Tanker",
        driver="Test Driver",
        client="Test Client",
        status=status,
        position=Location(lat=lat, lng=lng),
        destination=Destination(lat=destination[0], lng=destination[1], name="Target") if destination else None,
        start_point=Location(lat=start_point[0], lng=start_point[1]) if start_point else None,
        compartments=compartments,
        telemetry=Telemetry(speed=40, tilt=2, heading=90, last_update=T0),
        trail=[TrailPoint(lat=lat, lng=lng, timestamp=T0)],
    )


@pytest.fixture
def quiet_rng():
    """No incident ever fires (0.99 is above every incident probability)."""
    return RandomSource(ScriptedSource(0.99))


@pytest.fixture
def eager_rng():
    """Every probabilistic branch fires; every range yields its low end."""
    return RandomSource(ScriptedSource(0.0))


@pytest.fixture
def test_settings():
    return Settings(random_seed=1234, autostart=False)


@pytest.fixture
def seeded_sim(test_settings):
    return FleetSimulation(rng=RandomSource(seed=1234), clock=SteppingClock(), config=test_settings)


@pytest.fixture
def truck_factory():
    return make_truck


@pytest.fixture
def scripted():
    """Build a RandomSource from a fixed cycle of draws."""
    def _build(*values: float) -> RandomSource:
        return RandomSource(ScriptedSource(*values))
    return _build


@pytest.fixture
def clock():
    return SteppingClock()
