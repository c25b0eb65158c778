from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator

from errors import EmptyQueue, InvalidArgument


@dataclass(frozen=True)
class Vehicle:
    serial_id: int  # 1 for the first car to arrive, n for the n'th
    arrival_time: int  # time step at which the car was enqueued

    def __post_init__(self) -> None:
        if self.serial_id <= 0:
            raise InvalidArgument("serial_id must be positive")
        if self.arrival_time <= 0:
            raise InvalidArgument("arrival_time must be positive")

    def __str__(self) -> str:
        return f"[{self.serial_id:03d}]"


class SerialCounter:
    """Hands out vehicles numbered in arrival order for a single run."""

    def __init__(self) -> None:
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def next_vehicle(self, arrival_time: int) -> Vehicle:
        vehicle = Vehicle(serial_id=self._count + 1, arrival_time=arrival_time)
        self._count += 1
        return vehicle


class LaneQueue:
    """FIFO of vehicles waiting in one lane. Front is index 0."""

    def __init__(self) -> None:
        self._items: Deque[Vehicle] = deque()

    def enqueue(self, vehicle: Vehicle) -> None:
        if vehicle is None:
            raise InvalidArgument("cannot enqueue a missing vehicle")
        self._items.append(vehicle)

    def dequeue(self) -> Vehicle:
        if not self._items:
            raise EmptyQueue("dequeue from an empty lane")
        return self._items.popleft()

    def peek(self) -> Vehicle:
        if not self._items:
            raise EmptyQueue("peek at an empty lane")
        return self._items[0]

    def is_empty(self) -> bool:
        return not self._items

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Vehicle:
        return self._items[index]

    def __iter__(self) -> Iterator[Vehicle]:
        return iter(self._items)

    def __repr__(self) -> str:
        ids = ", ".join(str(v.serial_id) for v in self._items)
        return f"LaneQueue([{ids}])"
