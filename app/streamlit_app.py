"""Fantasy Basketball League - Main App."""

import logging
import sys
from pathlib import Path

import altair as alt
import streamlit as st

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fantasy_league import data_loader, standings_updater

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Page config
st.set_page_config(
    page_title="Fantasy League",
    page_icon="🏀",
    initial_sidebar_state="expanded"
)

st.title("🏀 Fantasy Basketball League")

# Sidebar
st.sidebar.title("Navigation")
st.sidebar.markdown("""
- **Team Portal** - Set lineups, buy and sell players, view round scores
- **Draft Room** - Snake draft with pick timer
- **Admin Portal** - Upload game feeds, finalize rounds
""")

leagues = data_loader.load_leagues()

if leagues.empty:
    st.info("No leagues yet. Seed leagues and teams to get started!")
    st.stop()

league_options = {
    f"{row['league_name']} ({row['mode']})": int(row['league_id'])
    for _, row in leagues.iterrows()
}
selected = st.selectbox("League:", options=list(league_options.keys()))
league_id = league_options[selected]
st.session_state.selected_league_id = league_id

league = data_loader.get_league(league_id)

col1, col2, col3 = st.columns(3)
with col1:
    st.metric("Mode", league['mode'].title())
with col2:
    st.metric("Teams", len(data_loader.load_teams(league_id)))
with col3:
    st.metric("Roster Size", int(league['team_size']))

st.divider()

# Display current standings
st.subheader("Current Standings")

standings = standings_updater.calculate_standings(league_id)

if not standings.empty:
    display_standings = standings[['rank', 'team_name', 'total_points', 'rounds_scored', 'avg_points_per_round']].copy()
    display_standings.columns = ['Rank', 'Team', 'Total Points', 'Rounds', 'Avg/Round']
    st.dataframe(display_standings, hide_index=True, use_container_width=True)
else:
    st.info("No teams in this league yet.")

round_points = standings_updater.get_round_points_table(league_id)

if not round_points.empty:
    st.subheader("Points by Round")
    line = alt.Chart(round_points).mark_line(point=True).encode(
        x=alt.X('round:O', title='Round'),
        y=alt.Y('cumulative_points:Q', title='Cumulative Points'),
        color=alt.Color('team_name:N', title='Team'),
        tooltip=['team_name', 'round',
                 alt.Tooltip('round_points:Q', format='.2f', title='Round Points'),
                 alt.Tooltip('cumulative_points:Q', format='.2f', title='Total')],
    ).properties(height=360)
    st.altair_chart(line, use_container_width=True)
