"""
Intersection Traffic-Light Simulation: step-by-step narration and summary
==========================================================================

Behavioral model
----------------
- **Roads**: 1 to 4 two-way roads meet at one light. Each road has 3 lanes
  (left, middle, right) in each of its 2 directions.
- **Arrivals**: every time step, each of the lanes gets a new car with
  probability p (one Bernoulli draw per lane), until the arrival window closes.
- **Light**: the active road holds the light for its green time; the last
  third of it is the left-turn signal. Roads with nothing queued are skipped.
- **Release**: one car per served lane per step.
- The run continues after the arrival window until every lane is drained.

Example
-------
    python intersection_sim.py --time 20 --prob 0.2 \
      --road "Main St:6" --road "Elm St:3" --seed 7 --out steps.csv

    # legacy positional form: TIME PROB N NAME... GREEN...
    python intersection_sim.py 20 0.2 2 Main Elm 6 3
"""

from __future__ import annotations  # Postponed evaluation of type hints

import argparse  # CLI argument parsing for configuration
import json  # Optional config file
import logging  # Diagnostics; narration itself goes to stdout
import random  # RNG for arrival draws
import statistics as stats  # Quantiles on wait times
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from display import light_caption, render_intersection
from errors import InvalidArgument
from traffic_signal import MAX_ROADS, Direction, Intersection, Lane, Road
from vehicles import SerialCounter, Vehicle

logger = logging.getLogger(__name__)

RULE = "#" * 80

# ------------------------------ helpers ------------------------------------

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)  # bool is an int subclass


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

# ------------------------------ config -------------------------------------

@dataclass
class RoadConfig:
    name: str  # Street name shown in the narration
    green_time: int  # Steps this road may hold the light per activation


@dataclass
class SimConfig:
    simulation_time: int = 20  # Number of steps during which cars may arrive
    arrival_probability: float = 0.1  # Chance of a new car per lane per step
    roads: List[RoadConfig] = field(default_factory=lambda: [RoadConfig("Main", 6), RoadConfig("Cross", 3)])
    seed: Optional[int] = None  # RNG seed for reproducible arrivals
    max_steps: Optional[int] = None  # Hard cap on total steps (None = run until drained)

    def validate(self) -> "SimConfig":
        if not _is_int(self.simulation_time) or self.simulation_time <= 0:
            raise InvalidArgument("simulation_time must be a positive integer")
        if not _is_number(self.arrival_probability) or not (0 < self.arrival_probability <= 1):
            raise InvalidArgument("arrival_probability must be in (0, 1]")
        if not isinstance(self.roads, (list, tuple)) or not self.roads or len(self.roads) > MAX_ROADS:
            raise InvalidArgument(f"need a list of 1 to {MAX_ROADS} roads, got {self.roads!r}")
        if any(not isinstance(r, RoadConfig) for r in self.roads):
            raise InvalidArgument("every road entry must be a RoadConfig")
        names = [r.name for r in self.roads]
        if any(not isinstance(n, str) or not n for n in names):
            raise InvalidArgument("road names must be non-empty strings")
        if len(set(names)) != len(names):
            raise InvalidArgument("road names must be unique")
        if any(not _is_int(r.green_time) or r.green_time <= 0 for r in self.roads):
            raise InvalidArgument("green times must be positive integers")
        if self.seed is not None and not _is_int(self.seed):
            raise InvalidArgument("seed must be an integer")
        if self.max_steps is not None and (not _is_int(self.max_steps) or self.max_steps <= 0):
            raise InvalidArgument("max_steps must be a positive integer")
        return self


def load_config(path: str, base: Optional[SimConfig] = None) -> SimConfig:
    """Read a JSON config file and merge it over `base` (or the defaults)."""
    base = base or SimConfig()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise InvalidArgument(f"{path}: config must be a JSON object")
    merged = {**asdict(base), **data}  # File values win over the base
    try:
        merged["roads"] = [RoadConfig(**r) for r in merged["roads"]]
        cfg = SimConfig(**merged)
    except TypeError as e:  # Missing/unknown keys or a non-object road entry
        raise InvalidArgument(f"{path}: malformed config: {e}") from e
    cfg.validate()
    logger.info("Loaded config from %s", path)
    return cfg

# ------------------------------ arrivals -----------------------------------

class BooleanSource:
    """Yields True with a fixed probability on every draw."""

    def __init__(self, probability: float, rng: Optional[random.Random] = None) -> None:
        self.probability = probability  # Validated by the setter
        self.rng = rng or random.Random()

    @property
    def probability(self) -> float:
        return self._probability

    @probability.setter
    def probability(self, value: float) -> None:
        if not _is_number(value) or not (0 < value <= 1):
            raise InvalidArgument("probability must be in (0, 1]")
        self._probability = float(value)

    def occurs(self) -> bool:
        return self.rng.random() < self._probability

# ------------------------------ records ------------------------------------

@dataclass
class Arrival:
    vehicle: Vehicle
    road_name: str
    direction: Direction
    lane: Lane


@dataclass
class Departure:
    vehicle: Vehicle
    wait_time: int  # Steps spent queued: step released - step arrived


@dataclass
class StepReport:
    time_step: int
    arriving: bool  # False once the arrival window has closed
    arrivals: List[Arrival]
    departures: List[Departure]
    road_name: str  # Road holding the light after this step
    caption: str  # "Green Light", "Left Signal" or "Red Light"
    timer: int  # Countdown as displayed (remaining + 1)
    queued: int  # Cars still waiting after this step


@dataclass
class SimulationSummary:
    total_steps: int
    total_vehicles: int
    cars_passed: int
    longest_wait: int
    total_wait: int
    average_wait: float  # Over every vehicle created
    p95_wait: float

# ------------------------------ simulator ----------------------------------

class IntersectionSimulator:
    def __init__(self, cfg: SimConfig, source: Optional[BooleanSource] = None):
        self.cfg = cfg.validate()  # Reject bad config before building anything
        self.source = source or BooleanSource(cfg.arrival_probability, random.Random(cfg.seed))
        self.counter = SerialCounter()  # Serial ids for this run only
        self.roads = [Road(r.name, r.green_time) for r in cfg.roads]
        self.intersection = Intersection(self.roads)

        self.time_step = 1  # Next step to execute
        self.cars_passed = 0
        self.total_wait = 0
        self.max_wait = 0
        self.waits: List[int] = []  # Wait of every released car, in release order
        self.reports: List[StepReport] = []  # One per executed step

    @property
    def cars_waiting(self) -> int:
        return self.counter.count - self.cars_passed

    def finished(self) -> bool:
        if self.cfg.max_steps is not None and self.time_step > self.cfg.max_steps:
            return True  # Hard cap reached
        return self.time_step > self.cfg.simulation_time and self.intersection.all_roads_empty()

    # ------------------------------ mechanics --------------------------------
    def _spawn_arrivals(self) -> List[Arrival]:
        arrivals: List[Arrival] = []
        for i, road in enumerate(self.roads):  # Roads in configured order
            for way in Direction:  # Forward then backward
                for lane in Lane:  # Left, middle, right
                    if self.source.occurs():
                        v = self.counter.next_vehicle(self.time_step)
                        self.intersection.enqueue_vehicle(i, way, lane, v)
                        arrivals.append(Arrival(v, road.name, way, lane))
        return arrivals

    def _record_departures(self, released: Optional[List[Vehicle]]) -> List[Departure]:
        departures: List[Departure] = []
        for v in released or []:
            wait = self.time_step - v.arrival_time  # Steps spent in the queue
            self.total_wait += wait
            self.max_wait = max(self.max_wait, wait)
            self.waits.append(wait)
            self.cars_passed += 1
            departures.append(Departure(v, wait))
        return departures

    def step(self) -> StepReport:
        arriving = self.time_step <= self.cfg.simulation_time  # Arrival window still open?
        arrivals = self._spawn_arrivals() if arriving else []
        released = self.intersection.step()  # One time unit at the light
        departures = self._record_departures(released)

        report = StepReport(
            time_step=self.time_step,
            arriving=arriving,
            arrivals=arrivals,
            departures=departures,
            road_name=self.intersection.active_road.name,
            caption=light_caption(self.intersection.active_light_phase, released, len(arrivals)),
            timer=self.intersection.active_countdown + 1,
            queued=self.intersection.queued_count(),
        )
        self.reports.append(report)
        self.time_step += 1
        return report

    # ------------------------------ reporting --------------------------------
    def average_wait_so_far(self) -> float:
        return round(self.total_wait / self.cars_passed, 2) if self.cars_passed else 0.0

    def _print_step(self, report: StepReport) -> None:
        print(RULE + "\n")
        print(f"Time step: {report.time_step}\n")
        print(f"{report.caption} for {report.road_name}.")
        print(f"Timer = {report.timer}\n")

        if not report.arriving:
            print("Cars no longer arriving.\n")
        print("ARRIVING CARS:")
        for a in report.arrivals:
            print(f"    Car{a.vehicle} entered {a.road_name}, going {a.direction.name} in {a.lane.name} lane.")
        print()

        print("PASSING CARS: ")
        for d in report.departures:
            print(f"    Car{d.vehicle} passes through. Wait time of {d.wait_time}.")
        if report.departures:
            print()

        print(render_intersection(self.intersection))

        print("STATISTICS:")
        print(f"    {'Cars currently waiting:':<25}{self.cars_waiting} cars")
        print(f"    {'Total cars passed:':<25}{self.cars_passed} cars")
        print(f"    {'Total wait time:':<25}{self.total_wait} turns")
        print(f"    {'Average wait time:':<25}{self.average_wait_so_far()} turns\n")

    def summary(self) -> SimulationSummary:
        total = self.counter.count
        avg = round(self.total_wait / total, 2) if total else 0.0  # Averaged over every car created
        if len(self.waits) >= 20:
            p95 = stats.quantiles(self.waits, n=20)[18]  # 95th percentile
        else:
            p95 = stats.mean(self.waits) if self.waits else 0.0
        return SimulationSummary(
            total_steps=self.time_step - 1,
            total_vehicles=total,
            cars_passed=self.cars_passed,
            longest_wait=self.max_wait,
            total_wait=self.total_wait,
            average_wait=avg,
            p95_wait=float(p95),
        )

    def print_summary(self, s: SimulationSummary) -> None:
        print((RULE + "\n") * 3)
        print("SIMULATION SUMMARY\n")
        print(f"    {'Total Time:':<22}{s.total_steps} steps")
        print(f"    {'Total vehicles:':<22}{s.total_vehicles} vehicles")
        print(f"    {'Longest wait time:':<22}{s.longest_wait} turns")
        print(f"    {'Total wait time:':<22}{s.total_wait} turns")
        print(f"    {'Average wait time:':<22}{s.average_wait:.2f} turns")
        print(f"    {'95th pct wait time:':<22}{s.p95_wait:.2f} turns\n")
        print("End simulation.")

    # ------------------------------- run -------------------------------------
    def run(self, verbose: bool = True) -> SimulationSummary:
        logger.info(
            "Starting run: %d arrival steps, p=%.3f, roads=%s",
            self.cfg.simulation_time, self.cfg.arrival_probability, [r.name for r in self.roads],
        )
        if verbose:
            print("\nStarting Simulation...\n")
        while not self.finished():
            report = self.step()
            if verbose:
                self._print_step(report)
        s = self.summary()
        if verbose:
            self.print_summary(s)
        logger.info("Run finished after %d steps, %d/%d cars passed", s.total_steps, s.cars_passed, s.total_vehicles)
        return s

    def to_dataframe(self) -> pd.DataFrame:
        rows: List[Dict[str, object]] = []
        passed = 0
        wait = 0
        for r in self.reports:
            passed += len(r.departures)
            wait += sum(d.wait_time for d in r.departures)
            rows.append({
                "time_step": r.time_step,
                "arrivals": len(r.arrivals),
                "passed": len(r.departures),
                "queued": r.queued,
                "active_road": r.road_name,
                "phase": r.caption,
                "timer": r.timer,
                "avg_wait": round(wait / passed, 2) if passed else 0.0,
            })
        return pd.DataFrame(rows, columns=["time_step", "arrivals", "passed", "queued",
                                           "active_road", "phase", "timer", "avg_wait"])


def save_plot(df: pd.DataFrame, path: str) -> Path:
    """Plot queue length and per-step departures to a PNG."""
    import matplotlib
    matplotlib.use("Agg")  # Headless backend for CLI use
    import matplotlib.pyplot as plt

    fig, axes = plt.subplots(2, 1, figsize=(8, 6), sharex=True)
    axes[0].plot(df["time_step"], df["queued"], label="queued", color="#e15759")
    axes[0].set_ylabel("Cars waiting")
    axes[0].grid(alpha=0.3)
    axes[1].bar(df["time_step"], df["passed"], label="passed", color="#4e79a7")
    axes[1].plot(df["time_step"], df["arrivals"], label="arrivals", color="#59a14f")
    axes[1].set_ylabel("Cars / step")
    axes[1].set_xlabel("time step")
    axes[1].legend(loc="best")
    axes[1].grid(alpha=0.3)
    fig.tight_layout()
    out_path = Path(path)
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    return out_path

# ------------------------------ CLI ----------------------------------------

def parse_road(text: str) -> RoadConfig:
    name, sep, green = text.rpartition(":")
    if not sep or not name:
        raise InvalidArgument(f"road must look like NAME:GREEN, got {text!r}")
    try:
        return RoadConfig(name=name, green_time=int(green))
    except ValueError:
        raise InvalidArgument(f"green time must be an integer, got {green!r}")


def parse_legacy(values: Sequence[str]) -> SimConfig:
    """TIME PROB N NAME_1..NAME_N GREEN_1..GREEN_N"""
    try:
        sim_time, prob, n = int(values[0]), float(values[1]), int(values[2])
        names = list(values[3:3 + n])
        greens = [int(g) for g in values[3 + n:3 + 2 * n]]
    except (IndexError, ValueError):
        raise InvalidArgument("expected: TIME PROB N NAME... GREEN...")
    if n <= 0 or len(names) != n or len(greens) != n or len(values) != 3 + 2 * n:
        raise InvalidArgument(f"expected {n} road names followed by {n} green times")
    return SimConfig(simulation_time=sim_time, arrival_probability=prob,
                     roads=[RoadConfig(nm, g) for nm, g in zip(names, greens)])


def prompt_config(input_fn: Callable[[str], str] = input, print_fn: Callable[..., None] = print) -> SimConfig:
    """Ask for the run parameters until a valid set is entered."""
    while True:
        try:
            sim_time = int(input_fn("Input the simulation time: "))
            prob = float(input_fn("Input the arrival probability: "))
            n = int(input_fn("Input number of streets: "))
            if not 0 < n <= MAX_ROADS:
                raise InvalidArgument(f"number of streets must be 1..{MAX_ROADS}")
            names: List[str] = []
            for i in range(n):
                name = input_fn(f"Input Street {i + 1} name: ")
                while name in names:  # Names must be unique
                    print_fn("Duplicate Detected.")
                    name = input_fn(f"Input Street {i + 1} name: ")
                names.append(name)
            greens = [int(input_fn(f"Input max green time for {nm}: ")) for nm in names]
            return SimConfig(simulation_time=sim_time, arrival_probability=prob,
                             roads=[RoadConfig(nm, g) for nm, g in zip(names, greens)]).validate()
        except ValueError:  # Bad number or rejected value (InvalidArgument is a ValueError)
            print_fn("Invalid Input")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Traffic-light intersection simulation (step-by-step narration)")
    p.add_argument("legacy", nargs="*", help="Legacy form: TIME PROB N NAME... GREEN...")
    p.add_argument("--time", type=int, default=None, help="Steps during which cars arrive")
    p.add_argument("--prob", type=float, default=None, help="Arrival probability per lane per step")
    p.add_argument("--road", action="append", default=[], metavar="NAME:GREEN",
                   help="Road name and green time; repeat for up to 4 roads")
    p.add_argument("--seed", type=int, default=None)  # RNG seed
    p.add_argument("--config", type=str, default=None, help="JSON config file")
    p.add_argument("--max-steps", type=int, default=None, help="Stop after this many steps")
    p.add_argument("--quiet", action="store_true", help="Only print the summary")
    p.add_argument("--out", type=str, default=None, help="Write the per-step dataset CSV here")
    p.add_argument("--plot", type=str, default=None, help="Optional PNG path for queue/throughput plot")
    p.add_argument("--log-level", type=str, default="WARNING")
    return p


def config_from_args(args: argparse.Namespace,
                     input_fn: Callable[[str], str] = input) -> SimConfig:
    if args.legacy:
        cfg = parse_legacy(args.legacy)
    elif args.config:
        cfg = load_config(args.config)
    elif args.time is None and args.prob is None and not args.road:
        cfg = prompt_config(input_fn)  # Nothing given: ask interactively
    else:
        cfg = SimConfig()
    # Explicit flags override the file/defaults
    if args.time is not None:
        cfg.simulation_time = args.time
    if args.prob is not None:
        cfg.arrival_probability = args.prob
    if args.road:
        cfg.roads = [parse_road(r) for r in args.road]
    if args.seed is not None:
        cfg.seed = args.seed
    if args.max_steps is not None:
        cfg.max_steps = args.max_steps
    return cfg.validate()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )
    try:
        cfg = config_from_args(args)
    except (InvalidArgument, OSError, TypeError, json.JSONDecodeError) as e:
        logger.error("Cannot start simulation: %s", e)
        return 2

    sim = IntersectionSimulator(cfg)
    summary = sim.run(verbose=not args.quiet)
    if args.quiet:
        sim.print_summary(summary)

    if args.out or args.plot:
        df = sim.to_dataframe()
        if args.out:
            df.to_csv(args.out, index=False)
            print(f"Wrote {len(df)} rows to {args.out}")
        if args.plot and not df.empty:
            out_path = save_plot(df, args.plot)
            print(f"Saved plot to {out_path}")
    return 0


if __name__ == "__main__":  # Execute only when run as a script
    sys.exit(main())
