from typing import Dict, List, Optional, Tuple
from fleet_monitor.models import Destination, DestinationOption, GeoZone, Location, ZonePoint

# --- LANDMARKS (Muscat, aligned with the zones below) ---
MUSCAT = Location(lat=23.5859, lng=58.4059)

# Depots
AIRPORT_DEPOT = Destination(lat=23.5932, lng=58.2845, name="Airport Depot")
GHALA_DEPOT = Destination(lat=23.5790, lng=58.3770, name="Ghala Depot")

# Stations
QURUM_SHELL = Destination(lat=23.6025, lng=58.4375, name="Shell Station Qurum")
AL_KHUWAIR_BP = Destination(lat=23.5850, lng=58.4000, name="BP Al Khuwair")
RUWI_OQ = Destination(lat=23.6005, lng=58.5310, name="OQ Station Ruwi") # centre of polygon
MUTTRAH_TOTAL = Destination(lat=23.6160, lng=58.5650, name="TotalEnergies Muttrah")


def _ring(*points: Tuple[float, float]) -> Tuple[ZonePoint, ...]:
    return tuple(ZonePoint(lat=lat, lng=lng) for lat, lng in points)


# --- GEOFENCE ZONES (fixed for the process lifetime) ---
GEOFENCE_ZONES: Tuple[GeoZone, ...] = (
    # Depots
    GeoZone(
        id="depot-1", name="Airport Depot", type="depot", shape="polygon",
        polygon=_ring((23.5926, 58.2839), (23.5926, 58.2851), (23.5936, 58.2851), (23.5936, 58.2839)),
    ),
    GeoZone(
        id="depot-2", name="Ghala Depot", type="depot", shape="circle",
        center=ZonePoint(lat=23.5790, lng=58.3770), radius=250,
    ),

    # Delivery
    GeoZone(
        id="delivery-1", name="Shell Station Qurum", type="delivery", shape="circle",
        center=ZonePoint(lat=23.6025, lng=58.4375), radius=120, client_name="Shell",
    ),
    GeoZone(
        id="delivery-2", name="BP Al Khuwair", type="delivery", shape="circle",
        center=ZonePoint(lat=23.5850, lng=58.4000), radius=120, client_name="BP",
    ),
    GeoZone(
        id="delivery-3", name="OQ Station Ruwi", type="delivery", shape="polygon",
        polygon=_ring((23.6000, 58.5300), (23.6000, 58.5320), (23.6010, 58.5320), (23.6010, 58.5300)),
        client_name="OQ",
    ),
    GeoZone(
        id="delivery-4", name="TotalEnergies Muttrah", type="delivery", shape="circle",
        center=ZonePoint(lat=23.6160, lng=58.5650), radius=140, client_name="TotalEnergies",
    ),

    # Danger
    GeoZone(
        id="danger-1", name="Port Security Zone", type="danger", shape="polygon",
        polygon=_ring((23.6235, 58.5635), (23.6235, 58.5680), (23.6255, 58.5680), (23.6255, 58.5635)),
    ),
    GeoZone(
        id="danger-2", name="Royal Precinct (Restricted)", type="danger", shape="circle",
        center=ZonePoint(lat=23.5760, lng=58.4100), radius=200,
    ),
)

ZONES_BY_ID: Dict[str, GeoZone] = {z.id: z for z in GEOFENCE_ZONES}


def get_zone(zone_id: str) -> Optional[GeoZone]:
    return ZONES_BY_ID.get(zone_id)


def assignable_destinations() -> List[DestinationOption]:
    """
    Depot and delivery zones reduced to a single point each.
    Danger zones are never offered as trip destinations.
    """
    from fleet_monitor.geofence import polygon_centroid

    options = []
    for zone in GEOFENCE_ZONES:
        if zone.type not in ("depot", "delivery"):
            continue
        if zone.shape == "circle" and zone.center is not None:
            point = zone.center
        elif zone.shape == "polygon" and zone.polygon:
            point = polygon_centroid(zone.polygon)
        else:
            continue
        options.append(DestinationOption(id=zone.id, name=zone.name, lat=point.lat, lng=point.lng))
    return options
