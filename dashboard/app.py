"""Streamlit dashboard for day-1 retention prediction."""
import json
import os
import time
from datetime import date, datetime, time as dtime, timedelta

import streamlit as st
import pandas as pd
import requests
import plotly.express as px

from retention.app.settings import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TESTING_PERCENT,
    DEFAULT_TRAINING_PERCENT,
)

CLIENT_TIME_FORMAT = "%m/%d/%Y %H:%M:%S"


# Configuration: prioritize Streamlit secrets, then env var, then localhost fallback
def get_backend_url():
    """Get backend URL from secrets, env var, or fallback to localhost."""
    try:
        if hasattr(st, "secrets") and "BACKEND_URL" in st.secrets:
            return st.secrets["BACKEND_URL"].rstrip("/")
    except FileNotFoundError:
        # No secrets.toml when running locally
        pass
    env_url = os.getenv("BACKEND_URL")
    if env_url:
        return env_url.rstrip("/")
    return "http://127.0.0.1:8000"


API_BASE_URL = get_backend_url()

st.set_page_config(
    page_title="Retention Prediction",
    page_icon="📈",
    layout="wide",
)

st.title("📈 Day-1 Retention Dashboard")


def check_backend_health():
    """Check if backend is running (longer timeout for cloud cold starts)."""
    try:
        response = requests.get(f"{API_BASE_URL}/health", timeout=10)
        return response.status_code == 200 and response.json().get("status") == "ok"
    except requests.exceptions.RequestException:
        return False


def create_activity(player_id: str, name: str, when: datetime, parameters=None, duration=None):
    """Create an activity payload the way the game client sends it."""
    data = {"Name": name, "Time": when.strftime(CLIENT_TIME_FORMAT)}
    if parameters:
        data["Parameters"] = [json.dumps({key: value}) for key, value in parameters.items()]
    if duration is not None:
        data["Duration"] = f"{duration.total_seconds():g}s"
    return {"player_id": player_id, "app_version": "1.0", "data": data}


def demo_player_activities(index: int, first_seen: datetime):
    """
    A plausible first session for one demo player.

    Engaged players (more progression, more social play) come back the
    next day; the rest only have their first session.
    """
    player_id = f"demo-player-{index:03d}"
    engaged = index % 3 != 0
    activities = [
        create_activity(
            player_id, "Tutorial Duration", first_seen,
            duration=timedelta(minutes=2 + index % 6),
        ),
    ]
    for step in range(1 + index % 4):
        at = first_seen + timedelta(minutes=5 * (step + 1))
        activities.append(create_activity(
            player_id, "Game Progression", at,
            parameters={"Increase": 2 + (index + step) % 5},
        ))
        activities.append(create_activity(
            player_id, "Level Duration", at, duration=timedelta(minutes=3 + step),
        ))
        activities.append(create_activity(player_id, "Game Feature Consumed", at))
    if engaged and index % 2 == 0:
        activities.append(create_activity(
            player_id, "Social Feature Consumed", first_seen + timedelta(minutes=30),
        ))
    if engaged:
        activities.append(create_activity(
            player_id, "Game Feature Consumed", first_seen + timedelta(days=1, hours=2),
        ))
    return activities


def generate_demo_activities(begin: date, player_count: int):
    """
    Post demo activities for `player_count` players starting on `begin`.
    Returns (success: bool, message: str, posted: int).
    """
    posted = 0
    start = datetime.combine(begin, dtime(hour=8))
    for index in range(player_count):
        first_seen = start + timedelta(days=index % 7, hours=index % 9)
        for activity in demo_player_activities(index, first_seen):
            try:
                response = requests.post(f"{API_BASE_URL}/activities", json=activity, timeout=5)
            except requests.exceptions.RequestException as e:
                return False, f"Failed to post activity: {e}", posted
            if response.status_code != 200:
                return False, f"Failed to post activity: {response.text}", posted
            posted += 1
        time.sleep(0.01)
    return True, f"Posted {posted} activities for {player_count} demo players.", posted


def run_prediction(body: dict):
    """POST /predictions. Returns (report or None, error message or None)."""
    try:
        response = requests.post(f"{API_BASE_URL}/predictions", json=body, timeout=60)
    except requests.exceptions.RequestException as e:
        return None, str(e)
    if response.status_code == 200:
        return response.json(), None
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    return None, f"HTTP {response.status_code}: {detail}"


# Sidebar
st.sidebar.header("Controls")

backend_ok = check_backend_health()
if backend_ok:
    st.sidebar.markdown("**Backend:** :green_circle: Connected")
else:
    st.sidebar.markdown("**Backend:** :red_circle: Unreachable")
    st.warning("Backend unreachable (may be waking up or misconfigured). Refresh the page to retry.")
st.sidebar.caption(f"`{API_BASE_URL}`")

st.sidebar.subheader("Model Window")
window_begin = st.sidebar.date_input("Begin", value=date(2014, 2, 17))
window_end = st.sidebar.date_input("End", value=date(2014, 2, 28))

st.sidebar.subheader("Training")
training_percent = st.sidebar.number_input(
    "Training %", min_value=0, max_value=100, value=DEFAULT_TRAINING_PERCENT,
)
testing_percent = st.sidebar.number_input(
    "Testing %", min_value=0, max_value=100, value=DEFAULT_TESTING_PERCENT,
)
max_iterations = st.sidebar.number_input(
    "Max iterations", min_value=1, max_value=1000, value=DEFAULT_MAX_ITERATIONS,
)
seed_text = st.sidebar.text_input("Shuffle seed (optional)", value="")

st.sidebar.subheader("Demo Data")
demo_players = st.sidebar.slider("Demo players", min_value=10, max_value=200, value=40, step=10)
if st.sidebar.button("Generate Demo Activities"):
    if not backend_ok:
        st.sidebar.error("Backend is offline - cannot post activities")
    else:
        with st.spinner("Posting demo activities..."):
            success, message, _ = generate_demo_activities(window_begin, demo_players)
        if success:
            st.sidebar.success(message)
        else:
            st.error(message)

if st.sidebar.button("Build Model"):
    if training_percent + testing_percent != 100:
        st.sidebar.error("Training and testing percentages must add up to 100")
    elif window_end <= window_begin:
        st.sidebar.error("End must be after begin")
    else:
        body = {
            "begin": datetime.combine(window_begin, dtime()).isoformat(),
            "end": datetime.combine(window_end, dtime()).isoformat(),
            "training_percent": int(training_percent),
            "testing_percent": int(testing_percent),
            "max_iterations": int(max_iterations),
        }
        if seed_text.strip():
            try:
                body["seed"] = int(seed_text)
            except ValueError:
                st.sidebar.warning("Seed must be an integer; using a random shuffle")
        with st.spinner("Fitting model..."):
            report, error = run_prediction(body)
        if error:
            st.error(f"Prediction failed: {error}")
        else:
            st.session_state["report"] = report

# Main content
if "report" in st.session_state:
    report = st.session_state["report"]

    st.subheader(f"Logistic Regression Model for {report['observed_name']}")
    st.caption(f"Model created from {report['begin']} to {report['end']}")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Total Dataset", report["total_players"])
    with col2:
        st.metric("Retained", report["retained_players"])
    with col3:
        st.metric("Training vs Testing", f"{report['training_rows']} vs {report['testing_rows']}")
    with col4:
        st.metric("Test Accuracy", f"{report['accuracy']:.2f}%")

    st.markdown(f"**Fit:** `{report['outcome']}` after {report['iterations']} iterations")

    df = pd.DataFrame(report["rows"]).rename(columns={
        "name": "Name",
        "coefficient": "Coefficient",
        "odds_ratio": "Odds Ratio",
        "standard_error": "Std. Error",
        "wald_statistic": "Wald",
        "lower_ci": "Lower Confidence",
        "upper_ci": "Upper Confidence",
    })
    st.dataframe(df, use_container_width=True, hide_index=True)

    # Intercept odds say nothing about any one variable
    variables = df[df["Name"] != "Intercept"].dropna(subset=["Odds Ratio"])
    if not variables.empty:
        st.subheader("Odds Ratios")
        fig_odds = px.bar(
            variables,
            x="Name",
            y="Odds Ratio",
            title="Change in retention odds per unit of each variable",
            color="Odds Ratio",
            color_continuous_scale=["#d62728", "#ffbb78", "#2ca02c"],
        )
        fig_odds.add_hline(y=1.0, line_dash="dash")
        fig_odds.update_layout(showlegend=False, xaxis_title="", yaxis_title="Odds Ratio")
        st.plotly_chart(fig_odds, use_container_width=True)

    st.subheader("Goodness of Fit")
    for line in report["summary"]:
        st.markdown(f"- {line}")

    with st.expander("Plaintext report"):
        st.code(report["text"])

else:
    st.info("Pick a time window in the sidebar and click 'Build Model'.")

    st.subheader("Getting Started")
    if backend_ok:
        st.markdown("""
        **Quick Start:**
        1. Click **"Generate Demo Activities"** in the sidebar to post sample telemetry
        2. Click **"Build Model"** to fit the day-1 retention model over the window

        Demo players who progress and play socially tend to come back the next day.
        """)
    else:
        st.markdown("""
        **Backend Unavailable**

        The backend API is currently unreachable. This could mean:
        - The backend is starting up (cloud services may take 30-60 seconds on first request)
        - There's a configuration issue with the backend URL

        **Try:** Refresh this page in a few seconds.

        *For developers:* start the API locally with `retention-api`.
        """)

# Footer
st.sidebar.divider()
st.sidebar.caption("Retention Prediction v0.1.0")
