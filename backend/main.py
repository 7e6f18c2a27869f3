import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from api.session import MapSession, create_session
from mapconfig.registry import get_map
from surface.types import MapEvent
from telemetry.singleton import get_store

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = (os.getenv("LISTMAP_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    entry = get_map()
    # StartupError propagates: the app does not come up without token and data.
    app.state.session = await create_session(entry.config)
    yield
    app.state.session = None


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiCenter(BaseModel):
    lat: float
    lon: float


class ApiViewport(BaseModel):
    width: int
    height: int


class ApiView(BaseModel):
    center: ApiCenter
    zoom: float
    viewport: ApiViewport | None = None


class ApiPlotRequest(BaseModel):
    view: ApiView | None = None


class ApiMapEvent(BaseModel):
    type: Literal["mousedown", "mousemove", "mouseup", "keydown"]
    x: float = 0.0
    y: float = 0.0
    button: int = 0
    shiftKey: bool = False
    altKey: bool = False
    ctrlKey: bool = False
    metaKey: bool = False
    key: str | None = None


class ApiDrawEvent(BaseModel):
    type: Literal["draw.create", "draw.update", "draw.delete", "draw.modechange"]
    features: list[dict[str, Any]] = []
    mode: str | None = None


class ApiPopup(BaseModel):
    lon: float
    lat: float
    html: str
    offset: list[float]


class ApiSessionSnapshot(BaseModel):
    phase: str
    selected: list[str]
    filter: list[Any] | None
    warning: str | None
    activeLayer: str
    visibility: dict[str, str]
    box: dict[str, str] | None
    popup: ApiPopup | None
    cursor: str
    dragPan: bool


def _session(request: Request) -> MapSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Map is still loading")
    return session


def _apply_view(session: MapSession, view: ApiView) -> dict[str, Any]:
    return session.set_view(
        center_lon=view.center.lon,
        center_lat=view.center.lat,
        zoom=view.zoom,
        width=view.viewport.width if view.viewport is not None else None,
        height=view.viewport.height if view.viewport is not None else None,
    )


@app.get("/map")
def get_map_style(request: Request):
    return _session(request).style_document()


@app.post("/plot")
def plot(request: Request, body: ApiPlotRequest | None = None):
    session = _session(request)
    if body is not None and body.view is not None:
        _apply_view(session, body.view)
    return session.plot()


@app.post("/view", response_model=ApiSessionSnapshot)
def set_view(request: Request, body: ApiView):
    return _apply_view(_session(request), body)


@app.post("/layers/toggle", response_model=ApiSessionSnapshot)
def toggle_layers(request: Request):
    return _session(request).toggle_layers()


@app.post("/events", response_model=ApiSessionSnapshot)
def map_event(request: Request, body: ApiMapEvent):
    return _session(request).dispatch(
        MapEvent(
            type=body.type,
            x=body.x,
            y=body.y,
            button=body.button,
            shift_key=body.shiftKey,
            alt_key=body.altKey,
            ctrl_key=body.ctrlKey,
            meta_key=body.metaKey,
            key=body.key,
        )
    )


@app.post("/draw", response_model=ApiSessionSnapshot)
def draw_event(request: Request, body: ApiDrawEvent):
    return _session(request).draw(body.type, features=body.features, mode=body.mode)


@app.get("/selection")
def get_selection(request: Request):
    session = _session(request)
    snap = session.snapshot()
    return {
        "phase": snap["phase"],
        "selected": snap["selected"],
        "filter": snap["filter"],
        "warning": snap["warning"],
    }


@app.get("/telemetry/summary")
def telemetry_summary(
    request: Request,
    mapId: str | None = None,
    kind: str | None = None,
    sinceMs: int | None = None,
):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    store.flush(timeout_s=2.0)
    session = getattr(request.app.state, "session", None)
    map_id = mapId or (session.config.id if session is not None else None)
    return {
        "enabled": True,
        "rows": store.summary(map_id=map_id, kind=kind, since_ms=sinceMs),
    }
