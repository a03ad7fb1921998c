from __future__ import annotations

from pathlib import Path

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from loadmon.analysis import per_batch
from loadmon.storage import default_storage, list_reports, load_report


st.set_page_config(page_title="loadmon", layout="wide")

storage = default_storage()


@st.cache_data
def _load_runs() -> pd.DataFrame:
    return storage.list_runs()


def _render_header() -> None:
    st.title("loadmon")
    st.caption("Cold/warm load comparisons and sequential resource monitoring.")


def _plot_latency_hist(outcomes: pd.DataFrame) -> go.Figure:
    ok = outcomes[outcomes["error_type"].isna()]
    if ok.empty:
        return go.Figure()
    fig = px.histogram(
        ok,
        x="latency_ms",
        color="phase",
        nbins=50,
        barmode="overlay",
        title="Latency distribution",
    )
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
    return fig


def _plot_batches(outcomes: pd.DataFrame) -> go.Figure:
    batches = per_batch(outcomes)
    fig = go.Figure()
    for phase, frame in batches.groupby("phase"):
        fig.add_trace(go.Scatter(x=frame["batch"], y=frame["mean_ms"], name=f"{phase} mean", mode="lines"))
        fig.add_trace(go.Scatter(x=frame["batch"], y=frame["p95_ms"], name=f"{phase} p95", mode="lines"))
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10), title="Latency per batch")
    return fig


def _plot_memory(summary: pd.DataFrame) -> go.Figure:
    fig = go.Figure()
    for col, label in [
        ("initial_rss_mb", "RSS before"),
        ("final_rss_mb", "RSS after"),
        ("initial_heap_total_mb", "VSZ before"),
        ("final_heap_total_mb", "VSZ after"),
    ]:
        fig.add_trace(go.Bar(x=summary["phase"], y=summary[col], name=label))
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10), barmode="group", title="Memory (MB)")
    return fig


def _render_run_view(run_id: str, runs: pd.DataFrame) -> None:
    row = runs[runs["run_id"] == run_id].iloc[0]
    summary = storage.load_summary(run_id)
    outcomes = storage.load_outcomes(run_id)
    st.subheader(f"Run {run_id}")
    st.caption(row["notes"] or "")

    col1, col2 = st.columns(2)
    col1.metric("Memory", row["memory_verdict"])
    col2.metric("Latency", row["latency_verdict"])
    st.dataframe(summary, use_container_width=True)

    col3, col4 = st.columns(2)
    with col3:
        st.plotly_chart(_plot_latency_hist(outcomes), use_container_width=True)
    with col4:
        st.plotly_chart(_plot_memory(summary), use_container_width=True)
    st.plotly_chart(_plot_batches(outcomes), use_container_width=True)


def _render_reports(directory: Path) -> None:
    st.subheader("Sequential monitor reports")
    reports = list_reports(directory)
    if not reports:
        st.info(f"No performance reports in {directory}")
        return
    selected = st.selectbox("Report", reports, format_func=lambda p: p.name)
    report = load_report(selected)
    summary = report["summary"]
    memory = summary["global_memory"]
    if memory["high_memory"]:
        st.warning(f"High peak memory usage ({memory['peak_increase_mb']} MB above baseline)")
    else:
        st.success(f"Reasonable peak memory usage ({memory['peak_increase_mb']} MB above baseline)")
    results = pd.DataFrame(
        [
            {
                "item_id": r["item_id"],
                "run_number": r["run_number"],
                "load_time_ms": r["load_time_ms"],
                "content_size": r["content_size"],
                "rss_after_mb": r["after"]["rss_mb"],
                "error": r["error"],
            }
            for r in report["results"]
        ]
    )
    st.dataframe(results, use_container_width=True)
    ok = results[results["load_time_ms"] >= 0]
    if not ok.empty:
        fig = px.line(ok, x="run_number", y="rss_after_mb", markers=True, title="RSS after each item")
        fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
        st.plotly_chart(fig, use_container_width=True)


def main() -> None:
    _render_header()
    report_dir = Path(st.sidebar.text_input("Report directory", "."))

    runs = _load_runs()
    if runs.empty:
        st.info("No comparison runs yet. Start one with `loadmon compare`.")
    else:
        selected_run = st.selectbox("Select run", runs["run_id"].tolist())
        _render_run_view(selected_run, runs)
    _render_reports(report_dir)


if __name__ == "__main__":
    main()
