"""Fixed-width text rendering of roads and their lane queues."""

from __future__ import annotations

from typing import List, Optional

from traffic_signal import Direction, Intersection, Lane, LightValue, Road
from vehicles import Vehicle

LANE_WIDTH = 30
LANE_SYMBOLS = {Lane.LEFT: " [L] ", Lane.MIDDLE: " [M] ", Lane.RIGHT: " [R] "}

# lanes that may NOT proceed under each light
_BLOCKED = {
    LightValue.GREEN: {Lane.LEFT},
    LightValue.LEFT_SIGNAL: {Lane.MIDDLE, Lane.RIGHT},
    LightValue.RED: {Lane.LEFT, Lane.MIDDLE, Lane.RIGHT},
}


def vehicle_label(vehicle: Vehicle) -> str:
    return str(vehicle)


def lane_marker(light_value: LightValue, lane: Lane) -> str:
    return "x" if lane in _BLOCKED[light_value] else " "


def _rule(char: str) -> str:
    return char * LANE_WIDTH + " " * 14 + char * (LANE_WIDTH + 1)


def render_road(road: Road) -> str:
    """Draw both directions side by side.

    Forward lanes run left to right with their front vehicle next to the
    centre line; backward lanes are mirrored, so their lane order is reversed
    and their front vehicle sits on the left.
    """
    lines: List[str] = [" " * 23 + "FORWARD" + " " * 15 + "BACKWARD", _rule("=")]
    for fwd_lane, bwd_lane in zip(Lane, reversed(Lane)):
        fwd = road.lane_queue(Direction.FORWARD, fwd_lane)
        bwd = road.lane_queue(Direction.BACKWARD, bwd_lane)
        fwd_text = "".join(vehicle_label(v) for v in reversed(list(fwd)))
        bwd_text = "".join(vehicle_label(v) for v in bwd)
        lines.append(
            f"{fwd_text:>{LANE_WIDTH}}{LANE_SYMBOLS[fwd_lane]}{lane_marker(road.light_value, fwd_lane)}"
            "   "
            f"{lane_marker(road.light_value, bwd_lane)}{LANE_SYMBOLS[bwd_lane]}{bwd_text:<{LANE_WIDTH}}"
        )
        if fwd_lane is not Lane.RIGHT:
            lines.append(_rule("-"))
    lines.append(_rule("="))
    return "\n".join(lines) + "\n"


def render_intersection(intersection: Intersection) -> str:
    return "\n".join(f"{road.name}:\n{render_road(road)}" for road in intersection.roads)


def light_caption(phase: LightValue, released: Optional[List[Vehicle]], arrivals: int) -> str:
    if arrivals == 0 and released is None:
        return "Red Light"
    if phase is LightValue.GREEN:
        return "Green Light"
    return "Left Signal"
