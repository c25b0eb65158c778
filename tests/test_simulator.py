import json
import random

import pandas as pd
import pytest

from errors import InvalidArgument
from intersection_sim import (
    BooleanSource,
    IntersectionSimulator,
    RoadConfig,
    SimConfig,
    load_config,
    main,
    parse_legacy,
    parse_road,
    prompt_config,
    save_plot,
)
from traffic_signal import Direction, Lane


@pytest.fixture
def busy_cfg():
    return SimConfig(
        simulation_time=15,
        arrival_probability=0.3,
        roads=[RoadConfig("Main", 6), RoadConfig("Elm", 3)],
        seed=7,
    )


def _one_burst_cfg(**kw):
    # p=1 fills all six lanes at step 1 only
    return SimConfig(simulation_time=1, arrival_probability=1.0, roads=[RoadConfig("Main", 3)], **kw)


class TestSimConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"simulation_time": 0},
            {"arrival_probability": 0.0},
            {"arrival_probability": 1.5},
            {"roads": []},
            {"roads": [RoadConfig(str(i), 2) for i in range(5)]},
            {"roads": [RoadConfig("A", 2), RoadConfig("A", 3)]},
            {"roads": [RoadConfig("A", 0)]},
            {"roads": [RoadConfig("", 2)]},
            {"max_steps": 0},
            {"simulation_time": 2.5},
            {"simulation_time": True},
            {"arrival_probability": "0.5"},
            {"roads": [RoadConfig("A", 0.5)]},
            {"roads": [RoadConfig("A", 3.0)]},
            {"roads": [RoadConfig(5, 3)]},
            {"roads": [("A", 3)]},
            {"max_steps": 1.5},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(InvalidArgument):
            SimConfig(**kwargs).validate()

    def test_defaults_are_valid(self):
        assert SimConfig().validate().roads[0].name == "Main"

    def test_load_config_merges_file_over_defaults(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"arrival_probability": 0.5,
                                    "roads": [{"name": "A", "green_time": 4}]}))
        cfg = load_config(str(path))
        assert cfg.arrival_probability == 0.5
        assert cfg.simulation_time == SimConfig().simulation_time
        assert cfg.roads == [RoadConfig("A", 4)]

    def test_load_config_validates(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"roads": [{"name": "A", "green_time": 4},
                                              {"name": "A", "green_time": 2}]}))
        with pytest.raises(InvalidArgument):
            load_config(str(path))


    @pytest.mark.parametrize(
        "payload",
        [
            {"roads": [{"name": "A"}]},
            {"roads": [{"name": "A", "green_time": 3, "lanes": 2}]},
            {"roads": ["A"]},
            {"roads": 3},
            {"speed_limit": 50},
            ["not", "an", "object"],
        ],
    )
    def test_load_config_malformed_file(self, tmp_path, payload):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps(payload))
        with pytest.raises(InvalidArgument):
            load_config(str(path))


class TestBooleanSource:
    @pytest.mark.parametrize("p", [0, -0.1, 1.01, "0.5", True])
    def test_probability_out_of_range(self, p):
        with pytest.raises(InvalidArgument):
            BooleanSource(p)

    def test_setter_validates(self):
        src = BooleanSource(0.5)
        with pytest.raises(InvalidArgument):
            src.probability = 2
        assert src.probability == 0.5

    def test_certain_event_always_occurs(self):
        src = BooleanSource(1.0)
        assert all(src.occurs() for _ in range(100))

    def test_seeded_draws_repeat(self):
        a = BooleanSource(0.4, random.Random(3))
        b = BooleanSource(0.4, random.Random(3))
        assert [a.occurs() for _ in range(50)] == [b.occurs() for _ in range(50)]


class TestSimulatorStep:
    def test_burst_is_released_green_then_left(self):
        sim = IntersectionSimulator(_one_burst_cfg())

        first = sim.step()
        assert [a.vehicle.serial_id for a in first.arrivals] == [1, 2, 3, 4, 5, 6]
        assert (first.arrivals[0].direction, first.arrivals[0].lane) == (Direction.FORWARD, Lane.LEFT)
        assert [d.vehicle.serial_id for d in first.departures] == [2, 3, 5, 6]
        assert all(d.wait_time == 0 for d in first.departures)
        assert first.caption == "Green Light"
        assert first.timer == 3
        assert first.queued == 2

        second = sim.step()
        assert not second.arriving
        assert second.arrivals == []
        assert [d.vehicle.serial_id for d in second.departures] == [1, 4]
        assert all(d.wait_time == 1 for d in second.departures)
        assert second.caption == "Left Signal"
        assert second.timer == 2
        assert sim.finished()

    def test_summary_after_burst(self):
        sim = IntersectionSimulator(_one_burst_cfg())
        s = sim.run(verbose=False)
        assert s.total_steps == 2
        assert s.total_vehicles == 6
        assert s.cars_passed == 6
        assert s.longest_wait == 1
        assert s.total_wait == 2
        assert s.average_wait == pytest.approx(0.33)
        assert s.p95_wait == pytest.approx(2 / 6)

    def test_narration(self, capsys):
        IntersectionSimulator(_one_burst_cfg()).run()
        out = capsys.readouterr().out
        assert "Starting Simulation..." in out
        assert "Time step: 1" in out
        assert "Green Light for Main." in out
        assert "Car[001] entered Main, going FORWARD in LEFT lane." in out
        assert "Car[002] passes through. Wait time of 0." in out
        assert "Cars no longer arriving." in out
        assert "Car[004] passes through. Wait time of 1." in out
        assert "SIMULATION SUMMARY" in out
        assert out.rstrip().endswith("End simulation.")


class TestSimulatorRun:
    def test_run_drains_every_vehicle(self, busy_cfg):
        sim = IntersectionSimulator(busy_cfg)
        s = sim.run(verbose=False)
        assert sim.intersection.all_roads_empty()
        assert s.cars_passed == s.total_vehicles == sim.counter.count
        assert s.total_steps >= busy_cfg.simulation_time
        assert sim.cars_waiting == 0

    def test_seeded_runs_are_deterministic(self, busy_cfg):
        a = IntersectionSimulator(busy_cfg)
        a.run(verbose=False)
        b = IntersectionSimulator(busy_cfg)
        b.run(verbose=False)
        pd.testing.assert_frame_equal(a.to_dataframe(), b.to_dataframe())

    def test_max_steps_caps_the_run(self):
        cfg = SimConfig(simulation_time=10, arrival_probability=1.0,
                        roads=[RoadConfig("Main", 3)], max_steps=3)
        s = IntersectionSimulator(cfg).run(verbose=False)
        assert s.total_steps == 3

    def test_dataframe_has_one_row_per_step(self, busy_cfg):
        sim = IntersectionSimulator(busy_cfg)
        s = sim.run(verbose=False)
        df = sim.to_dataframe()
        assert len(df) == s.total_steps
        assert list(df.columns) == ["time_step", "arrivals", "passed", "queued",
                                    "active_road", "phase", "timer", "avg_wait"]
        assert df["arrivals"].sum() == s.total_vehicles
        assert df["passed"].sum() == s.cars_passed
        assert df["queued"].iloc[-1] == 0

    def test_save_plot(self, busy_cfg, tmp_path):
        sim = IntersectionSimulator(busy_cfg)
        sim.run(verbose=False)
        out = save_plot(sim.to_dataframe(), str(tmp_path / "plot.png"))
        assert out.exists()


class TestCli:
    def test_parse_road(self):
        assert parse_road("Main St:6") == RoadConfig("Main St", 6)
        for bad in ("Main", ":4", "Main:x"):
            with pytest.raises(InvalidArgument):
                parse_road(bad)

    def test_parse_legacy(self):
        cfg = parse_legacy(["20", "0.2", "2", "Main", "Elm", "6", "3"])
        assert cfg.simulation_time == 20
        assert cfg.arrival_probability == 0.2
        assert cfg.roads == [RoadConfig("Main", 6), RoadConfig("Elm", 3)]

    @pytest.mark.parametrize("values", [["20", "0.2"], ["20", "0.2", "2", "Main", "6"], ["x", "0.2", "1", "A", "2"]])
    def test_parse_legacy_rejects_malformed(self, values):
        with pytest.raises(InvalidArgument):
            parse_legacy(values)

    def test_prompt_reasks_on_bad_input_and_duplicates(self):
        answers = iter(["abc", "10", "0.5", "2", "Main", "Main", "Elm", "4", "3"])
        printed = []
        cfg = prompt_config(lambda _: next(answers), printed.append)
        assert printed == ["Invalid Input", "Duplicate Detected."]
        assert cfg.simulation_time == 10
        assert cfg.roads == [RoadConfig("Main", 4), RoadConfig("Elm", 3)]

    def test_main_writes_dataset(self, tmp_path, capsys):
        out = tmp_path / "steps.csv"
        code = main(["--time", "5", "--prob", "0.5", "--road", "A:3", "--road", "B:2",
                     "--seed", "1", "--quiet", "--out", str(out)])
        assert code == 0
        df = pd.read_csv(out)
        assert len(df) >= 5
        text = capsys.readouterr().out
        assert "SIMULATION SUMMARY" in text
        assert "Time step:" not in text

    def test_main_rejects_bad_probability(self):
        assert main(["--time", "5", "--prob", "2", "--road", "A:3", "--quiet"]) == 2
