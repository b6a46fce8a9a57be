from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Dict, List, Literal, Optional, Tuple
from datetime import datetime


TruckStatus = Literal["idle", "assigned", "delivering", "uplifting", "completed"]
AlertType = Literal["theft", "tampering", "offline", "tilt", "valve", "loss", "route_deviation"]
AlertSeverity = Literal["low", "medium", "high", "critical"]


class FleetModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(FleetModel):
    lat: float
    lng: float


class Destination(FleetModel):
    lat: float
    lng: float
    name: str


class TrailPoint(FleetModel):
    lat: float
    lng: float
    timestamp: datetime


class LogEntry(FleetModel):
    id: str
    ts: datetime
    msg: str


class Compartment(FleetModel):
    id: str
    fuel_type: str
    capacity: float
    current_level: float
    is_offloading: bool = False
    target_delivery: Optional[float] = None
    delivered_liters: Optional[float] = None
    delivery_log: List[LogEntry] = []


class Telemetry(FleetModel):
    speed: float = 0.0
    fuel_flow: float = 0.0
    tilt: float = 0.0
    valve_status: bool = False
    online: bool = True
    heading: float = 0.0
    last_update: datetime


class CurrentAssignment(FleetModel):
    assigned_liters: float
    started_at: datetime
    per_comp_targets: Dict[str, float] = {}
    provisional_loss_liters: float = 0.0


class TripSummary(FleetModel):
    assigned_liters: float
    delivered_liters: float
    loss_liters: float
    loss_percent: float
    completed_at: datetime


class Truck(FleetModel):
    id: str
    name: str
    driver: str
    client: str
    status: TruckStatus
    position: Location
    destination: Optional[Destination] = None
    start_point: Optional[Location] = None
    compartments: List[Compartment]
    telemetry: Telemetry
    trail: List[TrailPoint] = []
    logs: List[LogEntry] = []
    current_assignment: Optional[CurrentAssignment] = None
    last_trip_summary: Optional[TripSummary] = None
    deviating: bool = False # Outside the start->destination corridor


class Alert(FleetModel):
    id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime
    truck_id: str
    location: Location
    acknowledged: bool = False


class FuelLossHistory(FleetModel):
    timestamp: datetime
    truck_id: str
    assigned_liters: float
    delivered_liters: float
    loss_liters: float
    loss_percent: float


class FuelConsumptionSample(FleetModel):
    timestamp: datetime
    truck_id: str
    liters: float


class ZonePoint(FleetModel):
    """A read-only coordinate used by zone geometry."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    lat: float
    lng: float


class GeoZone(FleetModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: Literal["depot", "delivery", "danger"]
    shape: Literal["circle", "polygon"]
    center: Optional[ZonePoint] = None
    radius: Optional[float] = None # meters
    polygon: Optional[Tuple[ZonePoint, ...]] = None
    client_name: Optional[str] = None


class DestinationOption(FleetModel):
    id: str
    name: str
    lat: float
    lng: float


class TickEvents(FleetModel):
    """Everything one truck produced during a tick, in emission order."""
    alerts: List[Alert] = []
    loss_history: List[FuelLossHistory] = []
    consumption: List[FuelConsumptionSample] = []
