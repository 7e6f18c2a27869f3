from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from geo.ops import Area
from geo.projection import ScreenPoint, ScreenRect

ESCAPE_KEY = "Escape"
PRIMARY_BUTTON = 0
DRAW_POLYGON_MODE = "draw_polygon"


class Phase(str, Enum):
    idle = "idle"
    dragging = "dragging"
    resolving = "resolving"
    drawing = "drawing"


@dataclass(frozen=True)
class SelectionState:
    phase: Phase = Phase.idle
    # Drag anchor and latest pointer position (screen pixels), only while dragging.
    start: ScreenPoint | None = None
    current: ScreenPoint | None = None
    box_shown: bool = False
    # Phase to return to once a drag or resolution ends (drawing while the
    # polygon tool is active).
    resume: Phase = Phase.idle

    def rect(self) -> ScreenRect | None:
        if self.start is None or self.current is None:
            return None
        return ScreenRect(self.start, self.current).normalized()


IDLE = SelectionState()


# --- events -----------------------------------------------------------------


@dataclass(frozen=True)
class PointerDown:
    point: ScreenPoint
    button: int
    modifier: bool


@dataclass(frozen=True)
class PointerMove:
    point: ScreenPoint


@dataclass(frozen=True)
class PointerUp:
    point: ScreenPoint


@dataclass(frozen=True)
class KeyDown:
    key: str


@dataclass(frozen=True)
class DrawCreate:
    areas: tuple[Area, ...]


@dataclass(frozen=True)
class DrawUpdate:
    areas: tuple[Area, ...]


@dataclass(frozen=True)
class DrawDelete:
    pass


@dataclass(frozen=True)
class DrawModeChange:
    mode: str


SelectionEvent = Union[
    PointerDown,
    PointerMove,
    PointerUp,
    KeyDown,
    DrawCreate,
    DrawUpdate,
    DrawDelete,
    DrawModeChange,
]


# --- effects ------------------------------------------------------------------


@dataclass(frozen=True)
class DisablePan:
    pass


@dataclass(frozen=True)
class EnablePan:
    pass


@dataclass(frozen=True)
class AttachGestureListeners:
    pass


@dataclass(frozen=True)
class DetachGestureListeners:
    pass


@dataclass(frozen=True)
class CreateBox:
    pass


@dataclass(frozen=True)
class MoveBox:
    rect: ScreenRect


@dataclass(frozen=True)
class RemoveBox:
    pass


@dataclass(frozen=True)
class ResolveRectangle:
    rect: ScreenRect


@dataclass(frozen=True)
class ResolveAreas:
    areas: tuple[Area, ...]


@dataclass(frozen=True)
class ClearHighlight:
    pass


Effect = Union[
    DisablePan,
    EnablePan,
    AttachGestureListeners,
    DetachGestureListeners,
    CreateBox,
    MoveBox,
    RemoveBox,
    ResolveRectangle,
    ResolveAreas,
    ClearHighlight,
]


@dataclass(frozen=True)
class Transition:
    state: SelectionState
    effects: tuple[Effect, ...] = ()
    # True when a drag ended without producing a region (escape).
    cancelled: bool = False


def transition(state: SelectionState, event: SelectionEvent) -> Transition:
    """
    Pure transition function of the region-selection gesture.

    Resolution effects are emitted with the state set to `resolving`; the caller
    runs them and then settles back via `settle()`: to drawing when the gesture
    started with the polygon tool active, to idle otherwise.
    """
    if state.phase == Phase.dragging:
        return _from_dragging(state, event)

    if isinstance(event, PointerDown):
        if not (event.modifier and event.button == PRIMARY_BUTTON):
            return Transition(state)
        return Transition(
            SelectionState(phase=Phase.dragging, start=event.point, resume=_resting(state)),
            (DisablePan(), AttachGestureListeners()),
        )

    if isinstance(event, DrawModeChange):
        phase = Phase.drawing if event.mode == DRAW_POLYGON_MODE else Phase.idle
        return Transition(SelectionState(phase=phase), (ClearHighlight(),))

    if isinstance(event, (DrawCreate, DrawUpdate)):
        return Transition(
            SelectionState(phase=Phase.resolving, resume=_resting(state)),
            (ResolveAreas(tuple(event.areas)),),
        )

    if isinstance(event, DrawDelete):
        return Transition(IDLE, (ClearHighlight(),))

    # Pointer moves/ups and keys outside of a drag belong to the map, not to us.
    return Transition(state)


def settle(state: SelectionState) -> SelectionState:
    if state.phase == Phase.resolving:
        return SelectionState(phase=state.resume)
    return state


def _resting(state: SelectionState) -> Phase:
    return Phase.drawing if state.phase == Phase.drawing else Phase.idle


def _from_dragging(state: SelectionState, event: SelectionEvent) -> Transition:
    if isinstance(event, PointerMove):
        rect = ScreenRect(state.start or event.point, event.point).normalized()
        effects: tuple[Effect, ...] = (MoveBox(rect),)
        if not state.box_shown:
            effects = (CreateBox(), *effects)
        return Transition(replace(state, current=event.point, box_shown=True), effects)

    if isinstance(event, PointerUp):
        rect = ScreenRect(state.start or event.point, event.point).normalized()
        return Transition(
            SelectionState(phase=Phase.resolving, resume=state.resume),
            (
                *_end_drag(state),
                ResolveRectangle(rect),
                EnablePan(),
            ),
        )

    if isinstance(event, KeyDown) and event.key == ESCAPE_KEY:
        return Transition(
            SelectionState(phase=state.resume),
            (*_end_drag(state), EnablePan()),
            cancelled=True,
        )

    # Draw-control events and stray presses are ignored mid-drag.
    return Transition(state)


def _end_drag(state: SelectionState) -> tuple[Effect, ...]:
    effects: tuple[Effect, ...] = (DetachGestureListeners(),)
    if state.box_shown:
        effects = (*effects, RemoveBox())
    return effects
