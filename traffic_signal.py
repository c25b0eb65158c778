from __future__ import annotations

import logging
from enum import Enum, IntEnum
from typing import List, Optional, Sequence, Tuple

from errors import InvalidArgument
from vehicles import LaneQueue, Vehicle

logger = logging.getLogger(__name__)

MAX_ROADS = 4


class LightValue(Enum):
    """Release policy of a road's lanes.

    GREEN: middle and right lanes may proceed in both directions.
    LEFT_SIGNAL: only the left lanes may proceed.
    RED: nothing may proceed; also marks a road that had nothing to release.
    """

    GREEN = "GREEN"
    LEFT_SIGNAL = "LEFT_SIGNAL"
    RED = "RED"


class Direction(IntEnum):
    FORWARD = 0
    BACKWARD = 1


class Lane(IntEnum):
    LEFT = 0
    MIDDLE = 1
    RIGHT = 2


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_slot(direction: int, lane: int) -> None:
    if not _is_int(direction) or direction not in (Direction.FORWARD, Direction.BACKWARD):
        raise InvalidArgument(f"direction must be 0 or 1, got {direction!r}")
    if not _is_int(lane) or lane not in (Lane.LEFT, Lane.MIDDLE, Lane.RIGHT):
        raise InvalidArgument(f"lane must be 0, 1 or 2, got {lane!r}")


class Road:
    """One two-direction street with three lanes per direction.

    The road owns a green-time budget for each activation; the last third of
    it (rounded down) is reserved for the left-turn phase.
    """

    def __init__(self, name: str, green_time: int) -> None:
        if not isinstance(name, str) or not name:
            raise InvalidArgument("road name must be a non-empty string")
        if not _is_int(green_time):
            raise InvalidArgument(f"green_time must be an integer, got {green_time!r}")
        if green_time <= 0:
            raise InvalidArgument("green_time must be positive")

        self.name = name
        self.green_time = green_time
        self.left_signal_time = self.green_time // len(Lane)
        # lanes[direction][lane]
        self._lanes: Tuple[Tuple[LaneQueue, ...], ...] = tuple(
            tuple(LaneQueue() for _ in Lane) for _ in Direction
        )
        self.light_value = LightValue.RED

    def enqueue_vehicle(self, direction: int, lane: int, vehicle: Vehicle) -> None:
        _check_slot(direction, lane)
        if vehicle is None:
            raise InvalidArgument("cannot enqueue a missing vehicle")
        self._lanes[direction][lane].enqueue(vehicle)

    def lane_queue(self, direction: int, lane: int) -> LaneQueue:
        _check_slot(direction, lane)
        return self._lanes[direction][lane]

    def is_lane_empty(self, direction: int, lane: int) -> bool:
        return self.lane_queue(direction, lane).is_empty()

    def all_lanes_empty(self) -> bool:
        return all(q.is_empty() for way in self._lanes for q in way)

    def queued_count(self) -> int:
        return sum(q.size() for way in self._lanes for q in way)

    def _release(self, lanes: Sequence[Lane]) -> List[Vehicle]:
        released: List[Vehicle] = []
        for way in Direction:
            for lane in lanes:
                queue = self._lanes[way][lane]
                if not queue.is_empty():
                    released.append(queue.dequeue())
        return released

    def advance(self, timer_val: int) -> Optional[List[Vehicle]]:
        """Run one time unit of this road's light.

        The left-turn phase is chosen once the timer has dropped into the
        left-signal budget, or earlier if the middle and right lanes have
        drained. When that phase has no left-turners either, the road is idle.

        Returns the vehicles released this call (front of each served lane,
        forward direction first), or None when the road is idle.
        """
        if not _is_int(timer_val) or timer_val <= 0:
            raise InvalidArgument("timer_val must be positive")

        left_empty = all(self._lanes[way][Lane.LEFT].is_empty() for way in Direction)
        mid_right_empty = all(
            self._lanes[way][lane].is_empty()
            for way in Direction
            for lane in (Lane.MIDDLE, Lane.RIGHT)
        )

        if timer_val <= self.left_signal_time or mid_right_empty:
            phase = LightValue.RED if left_empty else LightValue.LEFT_SIGNAL
        else:
            phase = LightValue.GREEN
        logger.debug("road %s timer=%d -> %s", self.name, timer_val, phase.name)

        if phase is LightValue.RED:
            self.light_value = LightValue.RED
            return None

        self.light_value = phase
        if phase is LightValue.GREEN:
            released = self._release((Lane.MIDDLE, Lane.RIGHT))
        else:
            released = self._release((Lane.LEFT,))

        # budget for this activation is spent
        if timer_val == 1:
            self.light_value = LightValue.RED
        return released

    def __repr__(self) -> str:
        return f"Road(name={self.name!r}, green_time={self.green_time})"


class Intersection:
    """Round-robin arbiter over up to four roads.

    Each road holds the light for its full green time before the next one in
    order gets a fresh budget. A road with nothing to release is skipped in
    favour of the next road that has work; if none has, the step is spent
    idle on the current road.
    """

    def __init__(self, roads: Sequence[Road]) -> None:
        if roads is None:
            raise InvalidArgument("roads must be provided")
        roads = tuple(roads)
        if not roads:
            raise InvalidArgument("an intersection needs at least one road")
        if len(roads) > MAX_ROADS:
            raise InvalidArgument(f"an intersection holds at most {MAX_ROADS} roads, got {len(roads)}")
        if any(not isinstance(r, Road) for r in roads):
            raise InvalidArgument("every road entry must be a Road")

        self._roads: Tuple[Road, ...] = roads
        self._light_index = 0
        self._countdown_timer = roads[0].green_time

    # ------------------------------ queries --------------------------------
    @property
    def roads(self) -> Tuple[Road, ...]:
        return self._roads

    @property
    def num_roads(self) -> int:
        return len(self._roads)

    @property
    def active_road_index(self) -> int:
        return self._light_index

    @property
    def active_countdown(self) -> int:
        return self._countdown_timer

    @property
    def active_road(self) -> Road:
        return self._roads[self._light_index]

    @property
    def active_light_phase(self) -> LightValue:
        return self.active_road.light_value

    def road(self, index: int) -> Road:
        if not _is_int(index) or not 0 <= index < len(self._roads):
            raise InvalidArgument(f"road index {index} out of range")
        return self._roads[index]

    def all_roads_empty(self) -> bool:
        return all(r.all_lanes_empty() for r in self._roads)

    def queued_count(self) -> int:
        return sum(r.queued_count() for r in self._roads)

    # ----------------------------- operations ------------------------------
    def enqueue_vehicle(self, road_index: int, direction: int, lane: int, vehicle: Vehicle) -> None:
        if not _is_int(road_index) or not 0 <= road_index < len(self._roads):
            raise InvalidArgument(f"road index {road_index} out of range")
        _check_slot(direction, lane)
        if vehicle is None:
            raise InvalidArgument("cannot enqueue a missing vehicle")
        self._roads[road_index].enqueue_vehicle(direction, lane, vehicle)

    def _next_index(self, index: int) -> int:
        return (index + 1) % len(self._roads)

    def step(self) -> Optional[List[Vehicle]]:
        """Advance the intersection by one time unit.

        Returns the vehicles that passed through, or None when every road was
        idle.
        """
        if self._countdown_timer == 0:
            self._light_index = self._next_index(self._light_index)
            self._countdown_timer = self.active_road.green_time
            logger.debug("light handed to road %s (%d steps)", self.active_road.name, self._countdown_timer)

        released = self.active_road.advance(self._countdown_timer)

        start_index = self._light_index
        start_timer = self._countdown_timer
        while released is None:
            self._light_index = self._next_index(self._light_index)
            if self._light_index == start_index:
                # every road idle; the time unit is still spent
                self._countdown_timer = start_timer - 1
                logger.debug("all roads idle, timer now %d", self._countdown_timer)
                return None
            self._countdown_timer = self.active_road.green_time
            logger.debug("skipping idle road, trying %s", self.active_road.name)
            released = self.active_road.advance(self._countdown_timer)

        self._countdown_timer -= 1
        return released
