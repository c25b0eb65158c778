import io
import contextlib
from typing import List, Tuple

import streamlit as st
import pandas as pd

from errors import InvalidArgument
from intersection_sim import IntersectionSimulator, RoadConfig, SimConfig, SimulationSummary
from traffic_signal import MAX_ROADS


# First Streamlit command must be set_page_config
st.set_page_config(page_title="Intersection Simulation", layout="wide")
st.title("Traffic-Light Intersection Simulation")
st.caption("Interactive wrapper around the step-by-step intersection simulator")

with st.expander("Help (plain language)", expanded=False):
    st.markdown(
        """
        What does the simulation do?
        - Up to four two-way roads meet at one light. Each direction has a left, middle and right lane.
        - Every step, each lane gets a new car with the arrival probability, until the simulation time is up.
        - One road at a time holds the light for its green time. Middle and right lanes go first;
          the last third of the green time is the left-turn signal.
        - A road with no cars waiting is skipped so the light never sits on an empty road.
        - After arrivals stop, the run continues until every lane is empty.

        Key terms:
        - Green time: how many steps a road keeps the light each time it gets it.
        - Wait time: steps between a car arriving and passing through.
        """
    )

with st.sidebar:
    st.header("Simulation Controls")

    sim_time = st.number_input("simulation time (steps)", value=20, min_value=1, step=1)
    prob = st.number_input("arrival probability", value=0.10, min_value=0.01, max_value=1.0,
                           step=0.01, format="%0.2f", help="Chance of a new car per lane per step")
    seed = st.number_input("seed", value=42, step=1)

    st.divider()
    st.subheader("Roads")
    n_roads = st.selectbox("number of roads", options=list(range(1, MAX_ROADS + 1)), index=1)
    defaults = [("Main", 6), ("Cross", 3), ("Oak", 4), ("Pine", 5)]
    road_inputs: List[Tuple[str, int]] = []
    for i in range(int(n_roads)):
        c1, c2 = st.columns(2)
        with c1:
            name = st.text_input(f"Road {i + 1} name", value=defaults[i][0])
        with c2:
            green = st.number_input(f"Road {i + 1} green", value=defaults[i][1], min_value=1, step=1)
        road_inputs.append((name, int(green)))

    show_text = st.checkbox("Show full narration", value=False)
    run_btn = st.button("Run simulation", type="primary")


def run_simulation() -> Tuple[str, SimulationSummary, pd.DataFrame]:
    cfg = SimConfig(
        simulation_time=int(sim_time),
        arrival_probability=float(prob),
        roads=[RoadConfig(name=n, green_time=g) for n, g in road_inputs],
        seed=int(seed),
    )
    sim = IntersectionSimulator(cfg)
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        summary = sim.run()
    return buf.getvalue(), summary, sim.to_dataframe()


if run_btn:
    try:
        with st.spinner("Running simulation..."):
            out_text, summary, df = run_simulation()
    except InvalidArgument as e:
        st.error(f"Invalid input: {e}")
        st.stop()

    st.subheader("Summary")
    m1, m2, m3, m4, m5 = st.columns(5)
    m1.metric("Total steps", summary.total_steps)
    m2.metric("Vehicles", summary.total_vehicles)
    m3.metric("Longest wait", summary.longest_wait)
    m4.metric("Average wait", f"{summary.average_wait:.2f}")
    m5.metric("p95 wait", f"{summary.p95_wait:.2f}")

    if not df.empty:
        st.subheader("Per-step metrics")
        c1, c2 = st.columns(2)
        with c1:
            st.line_chart(df.set_index("time_step")["queued"], height=240)
            st.caption("Cars waiting after each step")
        with c2:
            st.line_chart(df.set_index("time_step")[["arrivals", "passed"]], height=240)
            st.caption("Arrivals and departures per step")

        st.dataframe(df, use_container_width=True, hide_index=True)
        st.download_button("Download steps.csv", data=df.to_csv(index=False),
                           file_name="intersection_steps.csv", mime="text/csv")

    if show_text:
        st.subheader("Text output")
        st.code(out_text, language="text")
    st.download_button("Download output.txt", data=out_text, file_name="simulation_output.txt")

st.markdown(
    """
    Tips:
    - Road names must be unique.
    - With a high arrival probability the queues grow faster than one road can drain them,
      so the run can take many steps after arrivals stop.
    """
)
