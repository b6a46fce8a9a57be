"""
Per-truck tick logic.

``advance_truck`` never touches the fleet or its streams. It works on a deep
copy of the previous truck and hands back the new truck together with the
alerts, loss-history rows and consumption samples produced on the way;
``FleetSimulation`` decides where those go.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Tuple

from fleet_monitor.geofence import distance_from_point_to_segment_meters
from fleet_monitor.models import (
    Alert, Compartment, CurrentAssignment, FuelConsumptionSample, FuelLossHistory,
    Location, LogEntry, Telemetry, TickEvents, TrailPoint, Truck, TripSummary,
)
from fleet_monitor.randomness import RandomSource

logger = logging.getLogger("FleetSimulation")

# Movement (degrees)
ARRIVAL_THRESHOLD_DEG = 0.005 # ~500 m, planar
MOVE_FRACTION = 0.01
MOVE_NOISE_DEG = 0.0005
IDLE_JITTER_DEG = 0.00005

# Bounded per-truck histories
TRAIL_LIMIT = 20
LOG_LIMIT = 40
DELIVERY_LOG_LIMIT = 10

# Compartment thresholds (fractions of capacity)
RESERVE_FRACTION = 0.05
ELIGIBLE_FRACTION = 0.10
UPLIFT_REFILL_BELOW = 0.98
UPLIFT_DONE_AT = 0.95

# Trip sizing (liters)
TRIP_MIN_LITERS = 2500
TRIP_MAX_LITERS = 5000
COMP_MIN_LITERS = 500
COMP_MAX_LITERS = 2000
DRAIN_MIN, DRAIN_MAX = 20, 60
REFILL_MIN, REFILL_MAX = 40, 80
THEFT_MIN, THEFT_MAX = 50, 100

# Loss accounting (percent)
COMP_LOSS_PROBABILITY = 0.3
COMP_LOSS_MIN_PCT, COMP_LOSS_MAX_PCT = 0.5, 2.5
TRIP_LOSS_ALERT_PCT = 2.5
TRIP_LOSS_HIGH_PCT = 5.0

# Incident probabilities per tick
P_THEFT = 0.005
P_VALVE_FAULT = 0.003
P_TILT = 0.002
P_OFFLINE_UPLIFT = 0.001
P_AMBIENT_ALERT = 0.01
P_ONLINE = 0.95

AMBIENT_ALERT_TYPES = ("theft", "tampering", "tilt", "valve")


def alert_message(alert_type: str, truck_name: str) -> str:
    templates = {
        "theft": "Possible fuel theft detected on {}",
        "tampering": "Valve tampering detected on {}",
        "tilt": "Unusual tilt angle detected on {}",
        "valve": "Unauthorized valve operation on {}",
        "loss": "Fuel loss detected on {}",
        "offline": "Telematics offline on {}",
        "route_deviation": "Route deviation detected on {}",
    }
    return templates.get(alert_type, "Alert from {}").format(truck_name)


def make_alert(truck: Truck, alert_type: str, severity: str, message: str, now: datetime) -> Alert:
    return Alert(
        id=f"alert-{uuid.uuid4().hex[:12]}",
        type=alert_type,
        severity=severity,
        message=message,
        timestamp=now,
        truck_id=truck.id,
        location=truck.position.model_copy(),
        acknowledged=False,
    )


def add_log(truck: Truck, msg: str, now: datetime):
    truck.logs.append(LogEntry(id=f"log-{uuid.uuid4().hex[:10]}", ts=now, msg=msg))
    del truck.logs[:-LOG_LIMIT]


def heading_from_trail(trail, previous_heading: float) -> float:
    """Bearing of the last trail step in degrees [0, 360); unchanged if the truck did not move."""
    if len(trail) < 2:
        return previous_heading
    recent, before = trail[-1], trail[-2]
    d_lat = recent.lat - before.lat
    d_lng = recent.lng - before.lng
    if d_lat == 0 and d_lng == 0:
        return previous_heading
    return (math.degrees(math.atan2(d_lng, d_lat)) + 360) % 360


def refresh_telemetry(prev: Truck, rng: RandomSource, now: datetime) -> Telemetry:
    delivering = prev.status == "delivering"
    return Telemetry(
        speed=max(0.0, prev.telemetry.speed + rng.jitter(5)),
        fuel_flow=rng.uniform(10, 60) if delivering else 0.0,
        tilt=max(0.0, prev.telemetry.tilt + rng.jitter(1)),
        valve_status=delivering,
        online=rng.chance(P_ONLINE),
        heading=heading_from_trail(prev.trail, prev.telemetry.heading),
        last_update=now,
    )


# -------------------------------------------------
# STATUS TRANSITIONS
# -------------------------------------------------

def start_delivery(truck: Truck, rng: RandomSource, now: datetime):
    """assigned -> delivering: split a random trip volume over the compartments."""
    total_assigned = rng.integer(TRIP_MIN_LITERS, TRIP_MAX_LITERS)
    remaining = total_assigned
    per_comp_targets = {}

    for comp in truck.compartments:
        reserve = comp.capacity * RESERVE_FRACTION
        amount = 0.0
        if remaining > 0 and comp.current_level > comp.capacity * ELIGIBLE_FRACTION:
            available = comp.current_level - reserve
            amount = max(0.0, min(remaining, available, rng.integer(COMP_MIN_LITERS, COMP_MAX_LITERS)))
            remaining -= amount
        per_comp_targets[comp.id] = amount

    # Second pass: spread whatever is left over the spare fuel above each reserve
    for comp in truck.compartments:
        if remaining <= 0:
            break
        if comp.current_level <= comp.capacity * ELIGIBLE_FRACTION:
            continue
        spare = comp.current_level - comp.capacity * RESERVE_FRACTION - per_comp_targets[comp.id]
        extra = min(remaining, spare)
        if extra > 0:
            per_comp_targets[comp.id] += extra
            remaining -= extra

    for comp in truck.compartments:
        target = per_comp_targets[comp.id]
        comp.target_delivery = target
        comp.delivered_liters = 0.0
        comp.is_offloading = target > 0
        comp.delivery_log = []

    truck.status = "delivering"
    truck.current_assignment = CurrentAssignment(
        assigned_liters=total_assigned,
        started_at=now,
        per_comp_targets=per_comp_targets,
        provisional_loss_liters=0.0,
    )

    summary = ", ".join(f"{c.id} {c.target_delivery:.0f}L" for c in truck.compartments if c.is_offloading)
    dest_name = truck.destination.name if truck.destination else "?"
    add_log(truck, f"Assigned: {summary} → {dest_name}", now)
    logger.info(f"[SIM] {truck.id} started delivering {total_assigned}L to {dest_name}")


def complete_delivery(truck: Truck, now: datetime, events: TickEvents):
    """delivering -> completed: close the trip and account for losses."""
    truck.status = "completed"
    assignment = truck.current_assignment

    if assignment is None:
        completed_comps = sum(1 for c in truck.compartments if c.is_offloading)
        add_log(truck, f"Delivery completed ({completed_comps} compartments)", now)
        logger.info(f"[SIM] {truck.id} completed an unassigned delivery")
        return

    assigned = assignment.assigned_liters
    delivered = sum(c.delivered_liters or 0 for c in truck.compartments)
    loss = assignment.provisional_loss_liters
    loss_percent = (loss / assigned) * 100 if assigned > 0 else 0.0

    truck.last_trip_summary = TripSummary(
        assigned_liters=assigned,
        delivered_liters=delivered,
        loss_liters=loss,
        loss_percent=loss_percent,
        completed_at=now,
    )
    events.loss_history.append(FuelLossHistory(
        timestamp=now,
        truck_id=truck.id,
        assigned_liters=assigned,
        delivered_liters=delivered,
        loss_liters=loss,
        loss_percent=loss_percent,
    ))

    if loss_percent > TRIP_LOSS_ALERT_PCT:
        severity = "high" if loss_percent > TRIP_LOSS_HIGH_PCT else "medium"
        events.alerts.append(make_alert(
            truck, "loss", severity,
            f"Fuel loss detected: {loss:.1f}L ({loss_percent:.1f}%) on {truck.name}", now,
        ))

    add_log(
        truck,
        f"Trip result: Assigned {assigned:.0f}L, Delivered {delivered:.1f}L, "
        f"Loss {loss:.1f}L ({loss_percent:.1f}%)",
        now,
    )
    truck.current_assignment = None
    logger.info(f"[SIM] {truck.id} completed trip: delivered {delivered:.0f}/{assigned:.0f}L, loss {loss_percent:.2f}%")


def begin_uplift(truck: Truck, now: datetime):
    """completed -> uplifting."""
    truck.status = "uplifting"
    for comp in truck.compartments:
        comp.is_offloading = False
        comp.target_delivery = 0.0
        comp.delivered_liters = 0.0
    add_log(truck, "Uplifting started", now)


def uplift(truck: Truck, rng: RandomSource, now: datetime):
    """Refill compartments; back to idle once every one is nearly full."""
    for comp in truck.compartments:
        if comp.current_level < comp.capacity * UPLIFT_REFILL_BELOW:
            fill = rng.integer(REFILL_MIN, REFILL_MAX)
            new_level = min(comp.capacity, comp.current_level + fill)
            if new_level > comp.current_level and math.floor(new_level / 100) > math.floor(comp.current_level / 100):
                add_log(truck, f"{comp.id} refilled to {round(new_level)}L", now)
            comp.current_level = new_level
        comp.delivered_liters = 0.0

    if all(c.current_level >= c.capacity * UPLIFT_DONE_AT for c in truck.compartments):
        truck.status = "idle"
        truck.destination = None
        truck.start_point = None
        truck.deviating = False
        add_log(truck, "Uplift completed; ready for assignment", now)
        logger.info(f"[SIM] {truck.id} uplift completed, now idle")


def move_toward_destination(truck: Truck, rng: RandomSource) -> bool:
    """Step 1% of the way to the destination. Returns True once within the arrival threshold."""
    dest = truck.destination
    pos = truck.position
    truck.position = Location(
        lat=pos.lat + (dest.lat - pos.lat) * MOVE_FRACTION + rng.jitter(MOVE_NOISE_DEG),
        lng=pos.lng + (dest.lng - pos.lng) * MOVE_FRACTION + rng.jitter(MOVE_NOISE_DEG),
    )
    distance = math.hypot(truck.position.lat - dest.lat, truck.position.lng - dest.lng)
    return distance < ARRIVAL_THRESHOLD_DEG


def jitter_position(truck: Truck, rng: RandomSource):
    truck.position = Location(
        lat=truck.position.lat + rng.jitter(IDLE_JITTER_DEG),
        lng=truck.position.lng + rng.jitter(IDLE_JITTER_DEG),
    )


# -------------------------------------------------
# COMPARTMENT DRAIN
# -------------------------------------------------

def drain_compartments(truck: Truck, rng: RandomSource, now: datetime, events: TickEvents) -> float:
    """Offload one tick's worth from every active compartment. Returns liters drained."""
    total_drained = 0.0
    for comp in truck.compartments:
        target = comp.target_delivery or 0
        delivered = comp.delivered_liters or 0
        if not (comp.is_offloading and comp.current_level > 0 and delivered < target):
            continue

        drain_rate = rng.integer(DRAIN_MIN, DRAIN_MAX)
        remaining = target - delivered
        reserve = comp.capacity * RESERVE_FRACTION
        drain = min(drain_rate, remaining, comp.current_level - reserve)

        if drain > 0:
            comp.current_level -= drain
            delivered += drain
            comp.delivered_liters = delivered
            total_drained += drain

        if delivered >= target or comp.current_level <= reserve:
            finish_offloading(truck, comp, rng, now, events)
    return total_drained


def finish_offloading(truck: Truck, comp: Compartment, rng: RandomSource, now: datetime, events: TickEvents):
    loss_liters = 0
    if rng.chance(COMP_LOSS_PROBABILITY):
        loss_percent = rng.uniform(COMP_LOSS_MIN_PCT, COMP_LOSS_MAX_PCT)
        loss_liters = round((comp.target_delivery or 0) * loss_percent / 100)

        # Tracked on the assignment only; delivered liters stay untouched
        if truck.current_assignment is not None:
            truck.current_assignment.provisional_loss_liters += loss_liters

        if loss_liters > 10 or loss_percent > 1:
            events.alerts.append(make_alert(
                truck, "loss", "medium" if loss_percent > 2 else "low",
                f"Compartment {comp.id} loss: {loss_liters}L ({loss_percent:.1f}%) on {truck.name}", now,
            ))

    delivered = round(comp.delivered_liters or 0)
    msg = f"{comp.id} delivered {delivered}L"
    if loss_liters > 0:
        msg += f" (Loss: {loss_liters}L)"

    comp.delivery_log.append(LogEntry(id=f"del-{uuid.uuid4().hex[:10]}", ts=now, msg=msg))
    del comp.delivery_log[:-DELIVERY_LOG_LIMIT]
    add_log(truck, msg, now)
    comp.is_offloading = False


# -------------------------------------------------
# INCIDENTS
# -------------------------------------------------

def delivery_incidents(truck: Truck, rng: RandomSource, now: datetime, events: TickEvents):
    """Theft, valve fault and tilt draws; each one independent of the others."""
    if rng.chance(P_THEFT):
        active = [c for c in truck.compartments if c.is_offloading]
        if active:
            victim = rng.pick(active)
            stolen = rng.integer(THEFT_MIN, THEFT_MAX)
            victim.current_level = max(0.0, victim.current_level - stolen)
            msg = f"Sudden drop {victim.id} −{stolen}L (possible theft)"
            events.alerts.append(make_alert(truck, "theft", "high", msg, now))
            add_log(truck, msg, now)
            logger.info(f"[SIM] {truck.id} theft incident on {victim.id}: -{stolen}L")

    if rng.chance(P_VALVE_FAULT):
        truck.telemetry.valve_status = False
        events.alerts.append(make_alert(truck, "valve", "medium", f"Valve fault detected on {truck.name}", now))
        add_log(truck, "Valve tampering detected", now)
        logger.info(f"[SIM] {truck.id} valve fault")

    if rng.chance(P_TILT):
        truck.telemetry.tilt = rng.uniform(10, 15)
        events.alerts.append(make_alert(truck, "tilt", "medium", f"Excessive tilt detected on {truck.name}", now))
        add_log(truck, f"Excessive tilt: {truck.telemetry.tilt:.1f}°", now)
        logger.info(f"[SIM] {truck.id} excessive tilt {truck.telemetry.tilt:.1f}")


def uplift_incidents(truck: Truck, rng: RandomSource, now: datetime, events: TickEvents):
    if rng.chance(P_OFFLINE_UPLIFT):
        truck.telemetry.online = False
        events.alerts.append(make_alert(
            truck, "offline", "high", f"Telematics offline during fueling: {truck.name}", now,
        ))
        add_log(truck, "Telematics offline during fueling", now)
        logger.info(f"[SIM] {truck.id} went offline while uplifting")


def ambient_alert(truck: Truck, rng: RandomSource, now: datetime, events: TickEvents):
    if not rng.chance(P_AMBIENT_ALERT):
        return
    alert_type = rng.pick(AMBIENT_ALERT_TYPES)
    roll = rng.random()
    severity = "high" if roll < 0.3 else "medium" if roll < 0.6 else "low"
    events.alerts.append(make_alert(truck, alert_type, severity, alert_message(alert_type, truck.name), now))


def check_route_corridor(truck: Truck, corridor_width_m: float, now: datetime, events: TickEvents):
    """One route_deviation alert per excursion outside the start->destination corridor."""
    if truck.start_point is None or truck.destination is None:
        return
    off_route = distance_from_point_to_segment_meters(truck.position, truck.start_point, truck.destination)
    if off_route <= corridor_width_m:
        truck.deviating = False
        return
    if truck.deviating:
        return
    truck.deviating = True
    events.alerts.append(make_alert(
        truck, "route_deviation", "medium",
        f"{truck.name} left its route corridor ({off_route:.0f} m off course)", now,
    ))
    add_log(truck, f"Route deviation: {off_route:.0f} m off course", now)
    logger.info(f"[SIM] {truck.id} deviating {off_route:.0f} m from route")


# -------------------------------------------------
# TICK
# -------------------------------------------------

def advance_truck(
    prev: Truck,
    rng: RandomSource,
    now: datetime,
    route_deviation_alerts: bool = True,
    corridor_width_m: float = 500,
) -> Tuple[Truck, TickEvents]:
    """Advance one truck by one tick. ``prev`` is left untouched."""
    truck = prev.model_copy(deep=True)
    events = TickEvents()

    truck.telemetry = refresh_telemetry(prev, rng, now)

    if prev.status == "delivering":
        if truck.destination is not None:
            arrived = move_toward_destination(truck, rng)
        else:
            jitter_position(truck, rng)
            arrived = False

        drained = drain_compartments(truck, rng, now, events)
        delivery_incidents(truck, rng, now, events)
        if drained > 0:
            truck.telemetry.fuel_flow = drained

        if route_deviation_alerts:
            check_route_corridor(truck, corridor_width_m, now, events)
        if arrived:
            complete_delivery(truck, now, events)

    elif prev.status == "assigned":
        start_delivery(truck, rng, now)
    elif prev.status == "uplifting":
        uplift(truck, rng, now)
        uplift_incidents(truck, rng, now, events)
    elif prev.status == "completed":
        begin_uplift(truck, now)
    else:
        jitter_position(truck, rng)

    truck.trail.append(TrailPoint(lat=truck.position.lat, lng=truck.position.lng, timestamp=now))
    del truck.trail[:-TRAIL_LIMIT]

    ambient_alert(truck, rng, now, events)

    if prev.status == "delivering" and truck.telemetry.fuel_flow > 0:
        events.consumption.append(FuelConsumptionSample(
            timestamp=now, truck_id=truck.id, liters=truck.telemetry.fuel_flow,
        ))

    logger.debug(
        f"[SIM] {truck.id} status: {truck.status}, flow: {truck.telemetry.fuel_flow:.1f}, "
        f"pos: ({truck.position.lat:.4f}, {truck.position.lng:.4f})"
    )
    return truck, events
