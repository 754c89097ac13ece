import sys, os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import io
import json
import time

import pandas as pd
import streamlit as st

from classtime.errors import InfeasibleInputError, TimetableError
from classtime.export import class_grid, entries_frame, export_timetable
from classtime.generate import generate_schedule, parse_request
from classtime.io_utils import load_request, request_from_csv
from classtime.logging_setup import setup_logging
from classtime.scheduling.evaluation import suggest_improvements, summary
from classtime.synthetic import generate_request

setup_logging(level="INFO")

# ---------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------
st.set_page_config(page_title="ClassTime – Timetable", layout="wide")
st.title("ClassTime – Weekly School Timetable Generator")


def _bytes_of(upload):
    if upload is None:
        return None
    return upload.getvalue()


# ---------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------
@st.cache_data
def load_request_cached(request_bytes: bytes) -> dict:
    return load_request(io.BytesIO(request_bytes)).model_dump(by_alias=True)


@st.cache_data
def load_csv_request_cached(obligations_bytes: bytes, availability_bytes: bytes, rooms_bytes: bytes) -> dict:
    rooms = io.BytesIO(rooms_bytes) if rooms_bytes is not None else None
    request = request_from_csv(io.BytesIO(obligations_bytes), io.BytesIO(availability_bytes), rooms)
    return request.model_dump(by_alias=True)


@st.cache_data
def build_synthetic_cached(n_classes: int, n_teachers: int, days: int, periods: int,
                           blockout: float, n_rooms: int, seed: int = 42) -> dict:
    request = generate_request(n_classes=n_classes, n_teachers=n_teachers, days=days, periods=periods,
                               blockout=blockout, n_rooms=n_rooms, seed=seed)
    return request.model_dump(by_alias=True)


# ---------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------
st.subheader("Inputs")
mode = st.radio("Input mode", ["Request JSON", "CSV files", "Synthetic"], horizontal=True)

with st.form("controls"):
    if mode == "Request JSON":
        request_file = st.file_uploader("Generation request (JSON)", type=["json"])
        obligations_file = availability_file = rooms_file = None
    elif mode == "CSV files":
        c1, c2, c3 = st.columns(3)
        obligations_file = c1.file_uploader("Obligations CSV (class_id,subject_id,teacher_id,weekly_hours)", type=["csv"])
        availability_file = c2.file_uploader("Availability CSV (teacher_id,day,period)", type=["csv"])
        rooms_file = c3.file_uploader("(Optional) Rooms CSV (id,capacity,type)", type=["csv"])
        request_file = None
    else:
        c1, c2, c3 = st.columns(3)
        n_classes = c1.number_input("Classes", 1, 60, 4)
        n_teachers = c2.number_input("Teachers", 1, 200, 6)
        n_rooms = c3.number_input("Rooms (0 = unconstrained)", 0, 100, 0)
        c4, c5, c6 = st.columns(3)
        days = c4.number_input("Days", 1, 7, 5)
        periods = c5.number_input("Periods per day", 1, 12, 6)
        blockout = c6.slider("Teacher unavailability", 0.0, 0.6, 0.1)
        request_file = obligations_file = availability_file = rooms_file = None

    with st.expander("Search settings", expanded=False):
        colA, colB, colC = st.columns(3)
        max_iterations = colA.number_input("Max iterations", 1, 5_000_000, 200_000, 1000)
        timeout_ms = colB.number_input("Timeout (ms)", 1, 600_000, 10_000, 100)
        seed = colC.number_input("Random seed (-1 = none)", -1, 2**31 - 1, -1)
        colD, colE, colF = st.columns(3)
        restarts = colD.number_input("Restarts", 1, 64, 1)
        budget_policy = colE.selectbox("Budget policy", ["independent", "split"])
        workers = colF.number_input("Worker threads", 1, 32, 1)

    submitted = st.form_submit_button("Generate Timetable")

# ---------------------------------------------------------------------
# Run on Submit
# ---------------------------------------------------------------------
if submitted:
    if mode == "Request JSON":
        if request_file is None:
            st.error("Please upload a request JSON file.")
            st.stop()
        loader = lambda: load_request_cached(_bytes_of(request_file))
    elif mode == "CSV files":
        if obligations_file is None or availability_file is None:
            st.error("Please upload obligations and availability CSV files.")
            st.stop()
        loader = lambda: load_csv_request_cached(
            _bytes_of(obligations_file), _bytes_of(availability_file), _bytes_of(rooms_file)
        )
    else:
        loader = lambda: build_synthetic_cached(
            int(n_classes), int(n_teachers), int(days), int(periods), float(blockout), int(n_rooms),
            seed=int(seed) if seed >= 0 else 42,
        )

    try:
        data = loader()
        data["params"].update({
            "maxIterations": int(max_iterations),
            "timeoutMs": int(timeout_ms),
            "randomSeed": int(seed) if seed >= 0 else None,
            "restarts": int(restarts),
            "budgetPolicy": budget_policy,
            "workers": int(workers),
        })
        gen = generate_schedule(parse_request(data))
    except InfeasibleInputError as e:
        st.error(f"Infeasible input: {e}")
        if e.details:
            st.json(json.loads(json.dumps(e.details, default=str)))
        st.stop()
    except TimetableError as e:
        st.error(f"Invalid input: {e}")
        st.stop()

    result = gen.result
    best = gen.restarts.best

    # -----------------------------------------------------------------
    # Save outputs to /outputs/run_<timestamp>/
    # -----------------------------------------------------------------
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    output_dir = os.path.join(os.getcwd(), "outputs", f"run_{timestamp}")
    os.makedirs(output_dir, exist_ok=True)
    summary_text = summary(gen.schedule, gen.model, best.evaluation)
    with open(os.path.join(output_dir, "result.json"), "w", encoding="utf-8") as f:
        f.write(export_timetable(result, "json"))
    with open(os.path.join(output_dir, "summary.txt"), "w") as f:
        f.write(summary_text)
        f.write(f"\nRuns: {result.runs}\nSeed: {result.seed}\n")
        f.write(f"Runtime: {result.generation_time_ms:.1f} ms\n")

    # -----------------------------------------------------------------
    # UI Output
    # -----------------------------------------------------------------
    st.subheader("Summary")
    st.text(summary_text)
    st.caption(f"Runs: {result.runs} · Iterations: {result.iterations_used} · "
               f"Total time: {result.generation_time_ms:.1f} ms")

    if result.state == "COMPLETE":
        st.success("Timetable complete.")
    elif result.state == "PARTIAL":
        st.warning("Search budget ran out; showing the best partial timetable.")
    else:
        st.error("No complete timetable exists; showing the best effort.")

    frame = entries_frame(result)
    grid_days, grid_periods = gen.model.grid.days, gen.model.grid.periods
    st.subheader("Timetable by class")
    for class_id in sorted(frame["classId"].unique()):
        with st.expander(f"Class {class_id}", expanded=False):
            st.dataframe(class_grid(frame, class_id, grid_days, grid_periods), use_container_width=True)

    if result.unplaced_obligation_hours:
        st.subheader("Unplaced hours")
        st.dataframe(pd.DataFrame([u.model_dump(by_alias=True) for u in result.unplaced_obligation_hours]))

    suggestions = suggest_improvements(gen.schedule, gen.model)
    if suggestions:
        st.subheader("Suggestions")
        for s in suggestions:
            st.write(f"- {s['message']}")

    c1, c2, c3, c4 = st.columns(4)
    c1.download_button("Download entries.csv", export_timetable(result, "csv"),
                       file_name="entries.csv", mime="text/csv")
    c2.download_button("Download result.json", export_timetable(result, "json"),
                       file_name="result.json", mime="application/json")
    c3.download_button("Download timetable.html", export_timetable(result, "html", grid_days, grid_periods),
                       file_name="timetable.html", mime="text/html")
    c4.download_button("Download timetable.pdf", export_timetable(result, "pdf", grid_days, grid_periods),
                       file_name="timetable.pdf", mime="application/pdf")

    st.info(f"Results saved locally to: {output_dir}")
