"""
Dispatch Maps — Operator Debug Panel

Run with:  streamlit run app.py
"""

import sys
from pathlib import Path

import streamlit as st
import plotly.express as px
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent))

from dispatch_maps.background import LoaderLoop
from dispatch_maps.config import MapsConfig
from dispatch_maps.coordinator import MapsLoadCoordinator
from dispatch_maps.diagnostics import DiagnosticInspector
from dispatch_maps.environment import HttpScriptRunner, PageEnvironment
from dispatch_maps.errors import MapsLoaderError
from dispatch_maps.simulator import BEHAVIOURS, SimulatedScriptRunner, seed_foreign_scripts

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Dispatch Maps Debug",
    page_icon="🗺️",
    layout="wide",
    initial_sidebar_state="expanded",
)

STATE_COLORS = {
    "unloaded": "#95a5a6",
    "loading": "#f39c12",
    "ready": "#2ecc71",
    "failed": "#e74c3c",
}


# ---------------------------------------------------------------------------
# Shared loader (one per server process, like one per browser page).
# Sessions run on their own threads; every coordinator call goes through the
# loader's own event loop thread.
# ---------------------------------------------------------------------------
@st.cache_resource
def build_loader(page_mode: str, probe_interval: float):
    if page_mode == "Headless HTTP":
        page = PageEnvironment(runner=HttpScriptRunner())
    else:
        page = PageEnvironment(runner=SimulatedScriptRunner("ok"))
    coordinator = MapsLoadCoordinator(page, probe_interval=probe_interval)
    return LoaderLoop(), coordinator, DiagnosticInspector(coordinator)


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("Dispatch Maps")
st.sidebar.markdown("Google Maps loader diagnostics")
st.sidebar.divider()

page_mode = st.sidebar.radio("Page", ["Simulated", "Headless HTTP"])
config = MapsConfig.from_env()
loader, coordinator, inspector = build_loader(page_mode, config.probe_interval)

if isinstance(coordinator.page.runner, SimulatedScriptRunner):
    behaviour = st.sidebar.selectbox(
        "Simulated script behaviour", BEHAVIOURS,
        index=BEHAVIOURS.index(coordinator.page.runner.behaviour),
    )
    loader.call(setattr, coordinator.page.runner, "behaviour", behaviour)
    if not config.has_api_key:
        config = config.with_api_key("simulated-key")
    if st.sidebar.button("Inject foreign scripts"):
        loader.call(seed_foreign_scripts, coordinator.page, 2)

st.sidebar.divider()
st.sidebar.caption(f"API key: {config.masked_api_key()}")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------
col_load, col_debug, col_reload, col_refresh = st.columns(4)

with col_load:
    if st.button("Load Maps", use_container_width=True):
        try:
            loader.run(coordinator.request_load(config))
            st.success("Google Maps ready")
        except MapsLoaderError as exc:
            st.error(str(exc))

with col_debug:
    if st.button("Debug Scripts", use_container_width=True):
        loader.call(inspector.log_existing_scripts)
        st.toast("Script scan written to the server log")

with col_reload:
    if st.button("Force Reload", type="primary", use_container_width=True):
        loader.call(inspector.force_reload)
        st.toast("Loader reset to unloaded")

with col_refresh:
    st.button("Refresh Debug Info", use_container_width=True)

# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
info = loader.call(inspector.get_state)
manager = info["manager_state"]

if info["has_conflicts"]:
    st.error("Multiple Google Maps scripts detected! This will cause errors.")

color = STATE_COLORS.get(manager["state"], STATE_COLORS["unloaded"])
st.markdown(
    f"""
    <div style="background: linear-gradient(135deg, {color}22, {color}11);
                border-left: 4px solid {color};
                border-radius: 8px; padding: 16px; margin-bottom: 8px;">
        <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">Loader state</div>
        <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{manager["state"]}</div>
        <div style="font-size: 13px; color: #666;">{manager["last_error"] or "&nbsp;"}</div>
    </div>
    """,
    unsafe_allow_html=True,
)

c1, c2, c3, c4 = st.columns(4)
c1.metric("Existing scripts", info["existing_scripts"])
c2.metric("Existing callbacks", info["existing_callbacks"])
c3.metric("Injections", manager["injection_count"])
c4.metric("google.maps.Map", "✅ Available" if info["window_google_maps_map"] else "❌ Not Available")

st.subheader("Script declarations")
declarations = loader.call(inspector.declarations_frame)
if declarations.empty:
    st.info("No Google Maps scripts on the page.")
else:
    st.dataframe(declarations, use_container_width=True, hide_index=True)

st.subheader("Load attempts")
history = loader.call(inspector.history_frame)
if history.empty:
    st.info("No load attempts yet.")
else:
    chart_df = history.copy()
    chart_df["finished_at"] = chart_df["finished_at"].fillna(pd.Timestamp.now(tz="UTC"))
    chart_df["token"] = chart_df["token"].fillna("(refused)")
    fig = px.timeline(
        chart_df,
        x_start="started_at",
        x_end="finished_at",
        y="token",
        color="outcome",
        color_discrete_map=STATE_COLORS,
        hover_data=["poll_checks", "error"],
    )
    fig.update_layout(
        height=300,
        yaxis_title="",
        plot_bgcolor="rgba(0,0,0,0)",
        margin=dict(l=10, r=10, t=10, b=40),
    )
    st.plotly_chart(fig, use_container_width=True)
    st.dataframe(history, use_container_width=True, hide_index=True)

with st.expander("Raw snapshot"):
    st.json(info)

st.caption(f"Last updated: {info['timestamp']}")
