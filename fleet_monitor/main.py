import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleet_monitor.config import settings
from fleet_monitor.exceptions import AlertNotFoundError, FleetError, TruckNotFoundError, fleet_exception_handler
from fleet_monitor.map_data import GEOFENCE_ZONES, assignable_destinations
from fleet_monitor.models import Destination
from fleet_monitor.simulation import FleetSimulation, sim_instance

# Logger setup
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("FleetMonitor")

# Track the simulation task centrally
simulation_task: Optional[asyncio.Task] = None


def get_simulation() -> FleetSimulation:
    return sim_instance


async def simulation_loop(sim: FleetSimulation):
    """Tick the fleet on a fixed period until cancelled."""
    logger.info("Simulation loop started.")
    try:
        while True:
            sim.tick()
            await asyncio.sleep(settings.tick_interval_seconds)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"FATAL ERROR in simulation loop: {e}", exc_info=True)
    finally:
        logger.info("Simulation loop exited.")


def is_running() -> bool:
    return simulation_task is not None and not simulation_task.done()


def start_simulation_loop(sim: FleetSimulation) -> bool:
    """Start the loop unless it is already running. Returns True if a task was created."""
    global simulation_task
    if is_running():
        return False
    simulation_task = asyncio.create_task(simulation_loop(sim))
    return True


async def stop_simulation_loop() -> bool:
    """Cancel the loop. Ticks are synchronous, so no tick is ever left half-done."""
    global simulation_task
    if not is_running():
        return False
    simulation_task.cancel()
    with suppress(asyncio.CancelledError):
        await simulation_task
    simulation_task = None
    logger.info("Simulation loop stopped.")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.autostart:
        start_simulation_loop(sim_instance)
    yield
    await stop_simulation_loop()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FleetError, fleet_exception_handler)


@app.get("/")
async def read_home():
    return {"app": settings.app_name, "running": is_running()}


@app.get("/api/state")
async def get_state(sim: FleetSimulation = Depends(get_simulation)):
    """Return the current fleet snapshot. Auto-starts the loop if needed."""
    if settings.autostart and start_simulation_loop(sim):
        logger.info("Auto-starting/Restarting simulation loop.")
    state = sim.get_state()
    state["running"] = is_running()
    return state


@app.get("/api/trucks")
async def get_trucks(sim: FleetSimulation = Depends(get_simulation)):
    return sim.get_state()["trucks"]


@app.get("/api/trucks/{truck_id}")
async def get_truck(truck_id: str, sim: FleetSimulation = Depends(get_simulation)):
    truck = sim.get_truck(truck_id)
    if truck is None:
        raise TruckNotFoundError(truck_id)
    return truck.model_dump(mode="json", by_alias=True)


@app.get("/api/trucks/{truck_id}/zones")
async def get_truck_zones(truck_id: str, sim: FleetSimulation = Depends(get_simulation)):
    zones = sim.truck_zones(truck_id)
    if zones is None:
        raise TruckNotFoundError(truck_id)
    return [z.model_dump(mode="json", by_alias=True) for z in zones]


@app.post("/api/trucks/{truck_id}/assign")
async def assign_trip(truck_id: str, destination: Destination, sim: FleetSimulation = Depends(get_simulation)):
    """Assign an idle truck to a destination. Warns (but still assigns) on very long trips."""
    distance_m = sim.trip_distance_meters(truck_id, destination)
    if not sim.assign_trip(truck_id, destination):
        raise TruckNotFoundError(truck_id)

    warning = None
    if distance_m is not None and distance_m > settings.trip_distance_warning_m:
        warning = f"This trip is ~{round(distance_m / 1000)} km away"
        logger.warning(f"[DISPATCH] {truck_id}: {warning}")

    return {
        "truckId": truck_id,
        "status": "assigned",
        "destination": destination.model_dump(by_alias=True),
        "distanceKm": round(distance_m / 1000, 2) if distance_m is not None else None,
        "warning": warning,
    }


@app.get("/api/alerts")
async def get_alerts(unacknowledged_only: bool = False, sim: FleetSimulation = Depends(get_simulation)):
    alerts = sim.get_state()["alerts"]
    if unacknowledged_only:
        alerts = [a for a in alerts if not a["acknowledged"]]
    return alerts


@app.post("/api/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, sim: FleetSimulation = Depends(get_simulation)):
    if not sim.acknowledge_alert(alert_id):
        raise AlertNotFoundError(alert_id)
    return {"alertId": alert_id, "acknowledged": True}


@app.get("/api/fuel-loss")
async def get_fuel_loss_history(sim: FleetSimulation = Depends(get_simulation)):
    return sim.get_state()["fuelLossHistory"]


@app.get("/api/fuel-consumption")
async def get_fuel_consumption(sim: FleetSimulation = Depends(get_simulation)):
    return sim.get_state()["fuelConsumptionData"]


@app.get("/api/summary")
async def get_summary(sim: FleetSimulation = Depends(get_simulation)):
    return sim.fleet_summary()


@app.get("/api/zones")
async def get_zones():
    return [z.model_dump(mode="json", by_alias=True) for z in GEOFENCE_ZONES]


@app.get("/api/destinations")
async def get_destinations():
    """Depot and delivery zones a trip may be assigned to."""
    return [d.model_dump(by_alias=True) for d in assignable_destinations()]


@app.post("/api/start")
async def start_simulation(sim: FleetSimulation = Depends(get_simulation)):
    """Reset the fleet to its seed state and make sure the loop is running."""
    sim.reset()
    logger.info("World state reset: trucks back at their seed positions, streams cleared.")
    if start_simulation_loop(sim):
        logger.info("Simulation loop (re)started via /api/start")
    return {"message": "Simulation started/reset", "running": is_running()}


@app.post("/api/stop")
async def stop_simulation():
    stopped = await stop_simulation_loop()
    return {"message": "Simulation stopped" if stopped else "Simulation was not running", "running": is_running()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("fleet_monitor.main:app", host="0.0.0.0", port=8000, reload=True)
