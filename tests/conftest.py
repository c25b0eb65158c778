import pytest

from traffic_signal import Road
from vehicles import SerialCounter


@pytest.fixture
def counter():
    return SerialCounter()


@pytest.fixture
def fill(counter):
    """Enqueue `n` fresh vehicles into one lane of a road and return them."""

    def _fill(road: Road, direction: int, lane: int, n: int = 1, arrival_time: int = 1):
        vehicles = []
        for _ in range(n):
            v = counter.next_vehicle(arrival_time)
            road.enqueue_vehicle(direction, lane, v)
            vehicles.append(v)
        return vehicles

    return _fill
