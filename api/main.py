"""FastAPI REST and WebSocket interface for the danspad sensor pad.

Single-process, single-pad lifecycle with thread-safe access to:
- PadController (serial session, reconnection, background polling)
- CalibrationStore snapshots (values, thresholds, pressed flags)

Error mapping:
- IndexOutOfRange → 400
- Not connected → 409
- ProfileError → 422
- SerialIOError / LinkFault → 503
"""

import asyncio
import logging
import os
from threading import RLock
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from danspad_lib import PadController, __version__
from danspad_lib.errors import IndexOutOfRange, ProfileError, SerialIOError
from danspad_lib.models import PadSnapshot

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9160"))
DEFAULT_PAD_PORT = os.getenv("PAD_PORT") or None  # None: first USB serial port
DEFAULT_PAD_BAUD = int(os.getenv("PAD_BAUD", "115200"))
DEFAULT_PROFILE = os.getenv("PAD_PROFILE") or None
POLL_INTERVAL_S = float(os.getenv("POLL_INTERVAL_S", "0.0"))
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_controller: Optional[PadController] = None
_lock = RLock()  # Protects connect/disconnect

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="danspad API",
    description="REST and WebSocket interface for the danspad sensor pad",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Request/Response Models
# =============================================================================

class ThresholdRequest(BaseModel):
    """Request body for PUT /thresholds/{index}."""
    value: int


class ThresholdResponse(BaseModel):
    """Response for PUT /thresholds/{index}."""
    index: int
    value: int
    profile_saved: bool


class StatusResponse(BaseModel):
    """Response for GET /status."""
    connected: bool
    state: str
    port: Optional[str]
    sensor_count: Optional[int]
    profile: Optional[str]
    polling: bool
    reconnects: int


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    sensor_count: int


class SensorsResponse(BaseModel):
    """Response for GET /sensors."""
    sensor_count: int
    values: List[int]
    thresholds: List[int]
    pressed: List[bool]


def _snapshot_dict(snapshot: PadSnapshot) -> dict:
    return {
        "sensor_count": snapshot.sensor_count,
        "values": snapshot.values,
        "thresholds": snapshot.thresholds,
        "pressed": snapshot.pressed,
    }


def _require_controller() -> PadController:
    if _controller is None:
        raise HTTPException(status_code=409, detail="Not connected")
    return _controller


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(IndexOutOfRange)
async def index_out_of_range_handler(request: Request, exc: IndexOutOfRange):
    """Map IndexOutOfRange to 400 Bad Request."""
    logger.error(f"IndexOutOfRange: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ProfileError)
async def profile_error_handler(request: Request, exc: ProfileError):
    """Map ProfileError to 422 Unprocessable Entity."""
    logger.error(f"ProfileError: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(SerialIOError)
async def serial_io_error_handler(request: Request, exc: SerialIOError):
    """Map SerialIOError (including LinkFault) to 503 Service Unavailable."""
    logger.error(f"SerialIOError: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# =============================================================================
# Read-Only Endpoints
# =============================================================================

@app.get("/")
async def root():
    """Service info."""
    return {
        "service": "danspad API",
        "version": __version__,
        "status": "online"
    }


@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get connection state, port, sensor count and profile path."""
    if _controller is None:
        return StatusResponse(
            connected=False,
            state="disconnected",
            port=None,
            sensor_count=None,
            profile=None,
            polling=False,
            reconnects=0,
        )

    profile = _controller.profile_path
    return StatusResponse(
        connected=_controller.is_connected(),
        state=_controller.state.value,
        port=_controller.port_name,
        sensor_count=_controller.sensor_count,
        profile=str(profile) if profile else None,
        polling=_controller.is_polling(),
        reconnects=_controller.reconnect_count,
    )


@app.get("/sensors", response_model=SensorsResponse)
async def get_sensors():
    """Get a snapshot of current values, thresholds and pressed flags."""
    controller = _require_controller()
    return SensorsResponse(**_snapshot_dict(controller.snapshot()))


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
async def connect(
    port: Optional[str] = Query(DEFAULT_PAD_PORT, description="Serial port (default: first USB port)"),
    baud: int = Query(DEFAULT_PAD_BAUD, description="Baud rate"),
    profile: Optional[str] = Query(DEFAULT_PROFILE, description="Threshold profile file"),
    poll: bool = Query(True, description="Start background polling"),
):
    """Open the pad, sync thresholds, load the profile and start polling.

    Raises:
        400: If already connected
        503: If the pad cannot be opened or does not answer
    """
    global _controller

    with _lock:
        if _controller is not None:
            raise HTTPException(status_code=400, detail="Already connected. Disconnect first.")

        logger.info(f"Connecting to {port or 'first USB port'}...")
        controller = PadController(profile_path=profile)
        sensor_count = controller.connect(port=port, baud=baud)

        if poll:
            controller.start_polling(interval_s=POLL_INTERVAL_S)

        _controller = controller
        return ConnectResponse(status="connected", sensor_count=sensor_count)


@app.post("/disconnect")
async def disconnect():
    """Stop polling, save the profile and close the port."""
    global _controller

    with _lock:
        if _controller is not None:
            logger.info("Disconnecting from pad...")
            _controller.close()
            _controller = None

        return {"status": "disconnected"}


@app.post("/tick")
async def tick():
    """Run one polling step by hand (when connected with poll=false)."""
    controller = _require_controller()
    state = await asyncio.to_thread(controller.tick)
    return {"state": state.value}


# =============================================================================
# Threshold & Profile Endpoints
# =============================================================================

@app.put("/thresholds/{index}", response_model=ThresholdResponse)
async def set_threshold(index: int, body: ThresholdRequest):
    """Set one threshold (clamped to 0-1023), then save the profile.

    Raises:
        400: If index is out of range
        503: If the link drops during the write
    """
    controller = _require_controller()
    value = await asyncio.to_thread(controller.set_threshold, index, body.value)

    saved = False
    try:
        saved = controller.save_profile() is not None
    except ProfileError as e:
        logger.warning(f"Threshold set but profile not saved: {e}")

    return ThresholdResponse(index=index, value=value, profile_saved=saved)


@app.post("/profile/save")
async def save_profile():
    """Write current thresholds to the configured profile."""
    controller = _require_controller()
    if controller.profile_path is None:
        raise HTTPException(status_code=400, detail="No profile configured")
    path = controller.save_profile()
    return {"path": str(path)}


@app.post("/profile/load")
async def load_profile():
    """Reload the configured profile and push its thresholds to the pad."""
    controller = _require_controller()
    if controller.profile_path is None:
        raise HTTPException(status_code=400, detail="No profile configured")
    await asyncio.to_thread(controller.load_profile)
    return SensorsResponse(**_snapshot_dict(controller.snapshot()))


# =============================================================================
# WebSocket Streaming
# =============================================================================

@app.websocket("/stream")
async def websocket_stream(websocket: WebSocket):
    """WebSocket endpoint pushing pad snapshots whenever they change.

    Checks every 100ms; each message has the GET /sensors schema plus "state".
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected: {websocket.client}")

    if _controller is None:
        await websocket.send_json({"error": "Not connected"})
        await websocket.close()
        return

    try:
        last = None

        while True:
            controller = _controller
            if controller is None:
                await websocket.send_json({"error": "Disconnected"})
                await websocket.close()
                return

            message = _snapshot_dict(controller.snapshot())
            message["state"] = controller.state.value
            if message != last:
                await websocket.send_json(message)
                last = message

            await asyncio.sleep(0.1)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {websocket.client}")


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup configuration."""
    logger.info("=" * 60)
    logger.info(f"danspad API {__version__} started")
    logger.info(f"Host: {API_HOST}")
    logger.info(f"Port: {API_PORT}")
    logger.info(f"Default Pad Port: {DEFAULT_PAD_PORT or 'auto'}")
    logger.info(f"Default Profile: {DEFAULT_PROFILE}")
    logger.info(f"Poll Interval: {POLL_INTERVAL_S}s")
    logger.info(f"CORS Origins: {CORS_ORIGINS}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Save the profile and close the pad on shutdown."""
    global _controller

    logger.info("Shutting down danspad API...")
    if _controller is not None:
        _controller.close()
        _controller = None
    logger.info("Shutdown complete")
