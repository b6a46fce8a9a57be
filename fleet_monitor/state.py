import math
from datetime import datetime
from typing import Dict, List

from fleet_monitor.map_data import AIRPORT_DEPOT, AL_KHUWAIR_BP, GHALA_DEPOT, MUTTRAH_TOTAL, QURUM_SHELL
from fleet_monitor.models import Compartment, Location, Telemetry, TrailPoint, Truck
from fleet_monitor.randomness import RandomSource


def _tanks(*levels: float, offloading: Dict[str, float] = None) -> List[Compartment]:
    """Four 5000 L compartments alternating Diesel/Petrol."""
    offloading = offloading or {}
    tanks = []
    for idx, level in enumerate(levels):
        comp_id = f"C{idx + 1}"
        tanks.append(Compartment(
            id=comp_id,
            fuel_type="Diesel" if idx % 2 == 0 else "Petrol",
            capacity=5000,
            current_level=level,
            is_offloading=comp_id in offloading,
            target_delivery=offloading.get(comp_id),
        ))
    return tanks


# Seed data: (truck fields, seed centre, jitter km)
DEMO_TRUCKS = [
    (
        dict(id="TK001", name="Fuel Express 01", driver="John Smith", status="idle", client="Shell Station",
             compartments=_tanks(4800, 4500, 3200, 2800)),
        AIRPORT_DEPOT, 1.5,
    ),
    (
        # Between Ghala and Al Khuwair, already offloading C1
        dict(id="TK002", name="Fuel Express 02", driver="Sarah Johnson", status="delivering", client="BP Station",
             destination=AL_KHUWAIR_BP,
             compartments=_tanks(4200, 3800, 4600, 3400, offloading={"C1": 2000})),
        Location(lat=23.5850, lng=58.3950), 1.2,
    ),
    (
        dict(id="TK003", name="Fuel Express 03", driver="Mike Wilson", status="assigned", client="Shell Station",
             destination=QURUM_SHELL,
             compartments=_tanks(5000, 5000, 4800, 4900)),
        GHALA_DEPOT, 1.5,
    ),
    (
        dict(id="TK004", name="Fuel Express 04", driver="Lisa Brown", status="completed", client="Total Station",
             compartments=_tanks(500, 300, 800, 200)),
        MUTTRAH_TOTAL, 1.0,
    ),
    (
        dict(id="TK005", name="Fuel Express 05", driver="David Garcia", status="uplifting", client="Mobil Station",
             compartments=_tanks(3200, 2800, 3600, 3100)),
        AIRPORT_DEPOT, 1.0,
    ),
]


def seed_around(center, jitter_km: float, rng: RandomSource) -> Location:
    """Random point within roughly ``jitter_km`` of ``center``."""
    to_deg_lat = jitter_km / 111 # ~1 deg lat = 111 km
    to_deg_lng = jitter_km / (111 * math.cos(math.radians(center.lat)))
    return Location(
        lat=center.lat + rng.jitter(to_deg_lat),
        lng=center.lng + rng.jitter(to_deg_lng),
    )


def build_fleet(rng: RandomSource, now: datetime) -> Dict[str, Truck]:
    """Fresh copy of the demo fleet with randomised positions and telemetry."""
    fleet = {}
    for fields, center, jitter_km in DEMO_TRUCKS:
        position = seed_around(center, jitter_km, rng)
        delivering = fields["status"] == "delivering"
        telemetry = Telemetry(
            speed=rng.uniform(20, 80),
            fuel_flow=rng.uniform(10, 60) if delivering else 0.0,
            tilt=rng.uniform(0, 5),
            valve_status=delivering,
            online=rng.random() > 0.1,
            heading=rng.uniform(0, 360),
            last_update=now,
        )
        truck = Truck(
            position=position,
            telemetry=telemetry,
            trail=[TrailPoint(lat=position.lat, lng=position.lng, timestamp=now)],
            **fields,
        )
        # Seed records are shared module state; hand out independent copies
        fleet[truck.id] = truck.model_copy(deep=True)
    return fleet
