"""SEO Rank Monitor dashboard.

Streamlit page for one-off position checks and stored history.
Run with: streamlit run dashboard/app.py
"""

import asyncio
import logging
import sys
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from rank_monitor.modules.rank_tracker.serp_analyzer import describe_position  # noqa: E402

logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="SEO Rank Monitor",
    page_icon="📈",
    layout="wide",
)


def _run_async(coro):
    """Run an async coroutine from synchronous Streamlit context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _new_monitor():
    """Build an initialised RankMonitor from the project settings."""
    from rank_monitor.app import RankMonitor
    monitor = RankMonitor(config_path=str(project_root / "config" / "settings.yaml"))
    monitor.initialize()
    return monitor


async def _check(keyword, domain, region):
    """One check on a fresh monitor; its HTTP clients belong to the current loop."""
    monitor = _new_monitor()
    try:
        return await monitor.check(keyword, domain, region)
    finally:
        await monitor.close()


# ------------------------------------------------------------------
# Tab: Check
# ------------------------------------------------------------------

def _render_check_tab():
    """Form for a single position check."""
    st.subheader("🔍 Check Position")

    with st.form("position_check"):
        col1, col2, col3 = st.columns(3)
        with col1:
            keyword = st.text_input("Keyword", placeholder="kitchen renovation")
        with col2:
            domain = st.text_input("Domain", placeholder="example.com")
        with col3:
            region = st.text_input("Region (optional)", placeholder="moscow")
        submitted = st.form_submit_button("Analyze", type="primary")

    if submitted:
        if not keyword.strip() or not domain.strip():
            st.error("Keyword and domain are required")
            return
        with st.spinner("Searching and generating recommendations..."):
            state = _run_async(_check(keyword.strip(), domain.strip(), region.strip() or None))
        st.session_state["last_state"] = state

    state = st.session_state.get("last_state")
    if state is None:
        st.info("Enter a keyword and a domain to check its position.")
        return

    if state.error:
        st.error(state.error)
        return

    col1, col2 = st.columns(2)
    col1.metric("Position", state.our_position if state.our_position and state.our_position > 0 else "-")
    col2.metric("Results scanned", len(state.search_results or ()))
    st.caption(f"{state.domain} is {describe_position(state.our_position)} for “{state.keyword}”.")

    rows = [
        {
            "#": index,
            "Title": result.title or "Untitled",
            "URL": result.url,
            "Ours": "✔" if index == state.our_position else "",
        }
        for index, result in enumerate(state.search_results or (), 1)
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if state.analysis:
        st.markdown("#### Recommendations")
        st.markdown(state.analysis)


# ------------------------------------------------------------------
# Tab: History
# ------------------------------------------------------------------

def _render_history_tab():
    """Position history chart for a tracked keyword."""
    st.subheader("📉 Ranking History")

    col1, col2, col3 = st.columns(3)
    with col1:
        domain = st.text_input("Domain", key="history_domain", placeholder="example.com")
    with col2:
        keyword = st.text_input("Keyword", key="history_keyword", placeholder="kitchen renovation")
    with col3:
        limit = st.slider("Checks", min_value=5, max_value=100, value=30, key="history_limit")

    if not domain or not keyword:
        st.info("Enter a domain and keyword to view ranking history.")
        return

    if st.button("Load History", key="btn_history"):
        st.session_state["ranking_history"] = _new_monitor().get_history(keyword, domain, limit=limit)
        st.session_state["history_kw"] = keyword

    history = st.session_state.get("ranking_history", [])
    if not history:
        st.info("No history data available. Run a check with persistence enabled first.")
        return

    hist_df = pd.DataFrame(history)
    hist_df["date"] = pd.to_datetime(hist_df["date"])
    ranked = hist_df[hist_df["position"] > 0]

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=ranked["date"], y=ranked["position"], mode="lines+markers", name="Position"))
    fig.update_layout(
        yaxis=dict(autorange="reversed", title="Position"),
        height=400,
        title="Position Over Time: " + st.session_state.get("history_kw", keyword),
    )
    st.plotly_chart(fig, use_container_width=True)
    st.caption("Lower is better. Checks where the domain was not found are omitted from the chart.")
    st.dataframe(hist_df[["date", "position", "results"]], use_container_width=True, hide_index=True)


def main():
    st.title("📈 SEO Rank Monitor")
    st.markdown("Check where your domain ranks for a keyword and get recommendations.")

    tabs = st.tabs(["🔍 Check", "📉 History"])
    with tabs[0]:
        _render_check_tab()
    with tabs[1]:
        _render_history_tab()


main()
