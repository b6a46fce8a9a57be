from datetime import datetime
import logging
import threading
from collections import Counter, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from fleet_monitor.config import Settings, settings
from fleet_monitor.engine import advance_truck
from fleet_monitor.exceptions import InvalidTransitionError
from fleet_monitor.geofence import haversine_distance_meters, zones_containing_point
from fleet_monitor.models import (
    Alert, Destination, FuelConsumptionSample, FuelLossHistory, GeoZone, Location, Truck,
)
from fleet_monitor.randomness import RandomSource
from fleet_monitor.state import build_fleet

logger = logging.getLogger("FleetSimulation")

STATUSES = ("idle", "assigned", "delivering", "uplifting", "completed")


class FleetSimulation:
    """
    Owns the fleet and its three event streams.

    Every mutation (a tick or a command) runs under one lock, so a command
    arriving from another thread never sees a half-applied tick.
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or settings
        self.rng = rng or RandomSource(seed=self.config.random_seed)
        self.clock = clock or datetime.now
        self._lock = threading.RLock()
        self._init_state()

    def _init_state(self):
        self.tick_count = 0
        self.trucks: Dict[str, Truck] = build_fleet(self.rng, self.clock())
        self.alerts: Deque[Alert] = deque(maxlen=self.config.max_alerts) # newest first
        self.fuel_loss_history: Deque[FuelLossHistory] = deque(maxlen=self.config.max_loss_history)
        self.fuel_consumption_data: Deque[FuelConsumptionSample] = deque(maxlen=self.config.max_consumption_samples)

    def reset(self):
        """Rebuild the demo fleet and clear every stream."""
        with self._lock:
            self._init_state()
        logger.info("[SIM] Fleet reset to seed state")

    def tick(self) -> int:
        """Advance every truck by one step. Returns the new tick count."""
        with self._lock:
            now = self.clock()
            previous = self.trucks
            updated: Dict[str, Truck] = {}
            batches = []

            # Every truck is computed from the same previous snapshot
            for truck_id, truck in previous.items():
                new_truck, events = advance_truck(
                    truck, self.rng, now,
                    route_deviation_alerts=self.config.route_deviation_alerts,
                    corridor_width_m=self.config.corridor_width_m,
                )
                updated[truck_id] = new_truck
                batches.append(events)

            self.trucks = updated
            for events in batches:
                for alert in events.alerts:
                    self.alerts.appendleft(alert)
                self.fuel_loss_history.extend(events.loss_history)
                self.fuel_consumption_data.extend(events.consumption)

            self.tick_count += 1
            return self.tick_count

    # -------------------------------------------------
    # COMMANDS
    # -------------------------------------------------
    def assign_trip(self, truck_id: str, destination: Union[Destination, Dict[str, Any]]) -> bool:
        """
        Send an idle truck to ``destination``.

        Unknown trucks are ignored (returns False). A truck that is not idle
        raises InvalidTransitionError unless ``allow_reassign`` is configured,
        in which case its current trip is overwritten.
        """
        if not isinstance(destination, Destination):
            destination = Destination.model_validate(destination)

        with self._lock:
            truck = self.trucks.get(truck_id)
            if truck is None:
                logger.warning(f"[DISPATCH] assign_trip ignored: unknown truck {truck_id}")
                return False
            if truck.status != "idle" and not self.config.allow_reassign:
                raise InvalidTransitionError(truck_id, truck.status)

            truck.status = "assigned"
            truck.destination = destination
            truck.start_point = Location(lat=truck.position.lat, lng=truck.position.lng)
            truck.deviating = False
        logger.info(f"[DISPATCH] {truck_id} assigned to {destination.name}")
        return True

    def acknowledge_alert(self, alert_id: str) -> bool:
        """Mark an alert acknowledged. Idempotent; unknown ids return False."""
        with self._lock:
            for alert in self.alerts:
                if alert.id == alert_id:
                    alert.acknowledged = True
                    return True
        return False

    # -------------------------------------------------
    # QUERIES
    # -------------------------------------------------
    def get_truck(self, truck_id: str) -> Optional[Truck]:
        with self._lock:
            truck = self.trucks.get(truck_id)
            return truck.model_copy(deep=True) if truck else None

    def truck_zones(self, truck_id: str) -> Optional[List[GeoZone]]:
        with self._lock:
            truck = self.trucks.get(truck_id)
            if truck is None:
                return None
            return zones_containing_point(truck.position.lat, truck.position.lng)

    def trip_distance_meters(self, truck_id: str, destination) -> Optional[float]:
        """Straight-line distance from a truck to a prospective destination."""
        with self._lock:
            truck = self.trucks.get(truck_id)
            if truck is None:
                return None
            return haversine_distance_meters(truck.position, destination)

    def fleet_summary(self) -> Dict[str, Any]:
        with self._lock:
            trucks = list(self.trucks.values())
            status_counts = {s: 0 for s in STATUSES}
            for t in trucks:
                status_counts[t.status] += 1
            offline = sum(1 for t in trucks if not t.telemetry.online)
            unacknowledged = sum(1 for a in self.alerts if not a.acknowledged)
            loss_counts = Counter(row.truck_id for row in self.fuel_loss_history)

        repeated = sorted(
            ((truck_id, count) for truck_id, count in loss_counts.items() if count > 2),
            key=lambda item: item[1],
            reverse=True,
        )
        return {
            "total": len(trucks),
            "statusCounts": status_counts,
            "offline": offline,
            "active": status_counts["delivering"] + status_counts["assigned"] + status_counts["uplifting"],
            "incidents": unacknowledged,
            "repeatedLossTrucks": [{"truckId": t, "trips": c} for t, c in repeated],
        }

    def get_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "time": self.clock().isoformat(),
                "tick": self.tick_count,
                "trucks": [t.model_dump(mode="json", by_alias=True) for t in self.trucks.values()],
                "alerts": [a.model_dump(mode="json", by_alias=True) for a in self.alerts],
                "fuelLossHistory": [r.model_dump(mode="json", by_alias=True) for r in self.fuel_loss_history],
                "fuelConsumptionData": [s.model_dump(mode="json", by_alias=True) for s in self.fuel_consumption_data],
            }


# Global Instance
sim_instance = FleetSimulation()
