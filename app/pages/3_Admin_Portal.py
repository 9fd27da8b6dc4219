"""Admin Portal - Set up leagues, load game feeds, finalize rounds."""

import streamlit as st
import sys
from pathlib import Path
import pandas as pd

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fantasy_league import data_loader, draft_engine, lineup_manager, marketplace, score_calculator
from fantasy_league.config import DEFAULT_BUDGET, DEFAULT_PICK_TIME_LIMIT, DEFAULT_TEAM_SIZE

st.set_page_config(page_title="Admin Portal", page_icon="⚙️", layout="wide")

st.title("⚙️ Admin Portal")

# Tabs for admin functions
tab1, tab2, tab3, tab4 = st.tabs(["Leagues", "Upload Game Feed", "Finalize Rounds", "View All Rosters"])

with tab1:
    st.header("Create League")

    with st.form("create_league"):
        league_name = st.text_input("League Name:")
        championship_id = st.number_input("Championship ID:", min_value=1, value=1)
        mode = st.selectbox("Mode:", options=['budget', 'draft'])
        budget = st.number_input("Budget:", min_value=0, value=DEFAULT_BUDGET, step=1_000_000)
        team_size = st.number_input("Roster Size:", min_value=1, value=DEFAULT_TEAM_SIZE)
        pick_time_limit = st.number_input("Pick Time Limit (s):", min_value=5, value=DEFAULT_PICK_TIME_LIMIT)

        if st.form_submit_button("Create League") and league_name:
            league_id = data_loader.create_league(
                league_name, int(championship_id), mode=mode, budget=budget,
                team_size=int(team_size), pick_time_limit=int(pick_time_limit),
            )
            st.success(f"✅ League {league_id} created")

    st.header("Add Team")

    leagues = data_loader.load_leagues()
    if leagues.empty:
        st.info("Create a league first.")
    else:
        league_options = {row['league_name']: int(row['league_id']) for _, row in leagues.iterrows()}
        with st.form("create_team"):
            league_choice = st.selectbox("League:", options=list(league_options.keys()))
            team_name = st.text_input("Team Name:")
            if st.form_submit_button("Add Team") and team_name:
                league = data_loader.get_league(league_options[league_choice])
                if league['mode'] == 'draft' and league['draft_status'] != 'pending':
                    st.error("❌ Teams can't join once the draft has started")
                else:
                    team_id = data_loader.create_team(league_options[league_choice], team_name)
                    st.success(f"✅ Team {team_id} added")

        st.subheader("Leagues")
        st.dataframe(leagues, hide_index=True, use_container_width=True)

with tab2:
    st.header("Upload Game Feed")

    feeds = {
        'Games': ('games', data_loader.save_games),
        'Player Game Scores': ('player_game_scores', data_loader.save_player_game_scores),
        'Players': ('players', data_loader.save_players),
    }
    feed = st.selectbox("Feed:", options=list(feeds.keys()))
    table_name, save_feed = feeds[feed]
    required_cols = data_loader.SOURCE_TABLES[table_name]

    uploaded_file = st.file_uploader("Choose a CSV file", type="csv")

    if uploaded_file is not None:
        df = pd.read_csv(uploaded_file)

        st.write("Preview:")
        st.dataframe(df.head(), use_container_width=True)

        missing_cols = [col for col in required_cols if col not in df.columns]
        if missing_cols:
            st.error(f"❌ Missing required columns: {', '.join(missing_cols)}")
        elif st.button("Save Feed", type="primary"):
            save_feed(df)
            snapshots = lineup_manager.sync_round_locks()
            st.success(f"✅ {feed} saved ({len(df)} rows). {snapshots} lineup(s) locked in for active rounds.")

    st.divider()

    st.subheader("Required CSV Format")
    st.markdown(f"Your CSV must have these columns: {', '.join(f'`{c}`' for c in required_cols)}")

with tab3:
    st.header("Finalize Rounds")
    st.caption("Adds each finished round's points to team totals. Rounds already finalized are skipped.")

    leagues = data_loader.load_leagues()
    for _, league in leagues.iterrows():
        league_id = int(league['league_id'])
        col1, col2 = st.columns([3, 1])
        with col1:
            latest = lineup_manager.get_latest_finished_round(league['championship_id'])
            st.write(f"**{league['league_name']}** - latest finished round: {latest or '-'}")
        with col2:
            if st.button("Finalize", key=f"finalize_{league_id}"):
                rounds = score_calculator.finalize_ready_rounds(league_id)
                marketplace.record_finished_round_prices(league['championship_id'])
                if rounds:
                    st.success(f"✅ Finalized round(s) {', '.join(map(str, rounds))}")
                else:
                    st.info("Nothing new to finalize")

with tab4:
    st.header("All Rosters")

    teams = data_loader.load_teams()

    for _, team in teams.iterrows():
        with st.expander(f"{team['team_name']} (league {int(team['league_id'])})"):
            roster = draft_engine.get_team_roster(int(team['team_id']))
            if roster.empty:
                st.info("Empty roster")
            else:
                display_roster = roster[['player_name', 'position', 'lineup_position', 'is_captain', 'purchase_price']].copy()
                display_roster.columns = ['Player', 'Position', 'Slot', 'Captain', 'Paid']
                st.dataframe(display_roster, hide_index=True, use_container_width=True)
