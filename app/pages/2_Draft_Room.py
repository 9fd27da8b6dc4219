"""Draft Room - Snake draft with a pick clock and auto-pick."""

import streamlit as st
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fantasy_league import data_loader, draft_engine
from fantasy_league.draft_scheduler import DraftScheduler

st.set_page_config(page_title="Draft Room", page_icon="📋", layout="wide")

st.title("📋 Draft Room")


@st.cache_resource
def get_scheduler():
    """One auto-pick scheduler per server process."""
    return DraftScheduler()


leagues = data_loader.load_leagues()
draft_leagues = leagues[leagues['mode'] == 'draft']

if draft_leagues.empty:
    st.info("No draft leagues yet.")
    st.stop()

league_options = {row['league_name']: int(row['league_id']) for _, row in draft_leagues.iterrows()}
league_id = league_options[st.selectbox("League:", options=list(league_options.keys()))]

teams = data_loader.load_teams(league_id)
team_names = {int(row['team_id']): row['team_name'] for _, row in teams.iterrows()}

status = draft_engine.get_draft_status(league_id)

if status['last_auto_action'] is not None:
    action = status['last_auto_action']
    if action['action'] == 'auto_pick':
        st.info(f"⏱️ Time ran out: {action['player_name']} auto-drafted for {team_names.get(action['team_id'])}")
    else:
        st.warning(f"⏱️ Pick {action['pick_number']}: no eligible player for {team_names.get(action['team_id'])} ({action['action']})")

if status['draft_status'] == 'pending':
    st.info(f"Draft not started. {len(teams)} teams registered.")

    shuffle = st.checkbox("Randomize draft order", value=True)
    if st.button("Start Draft", type="primary"):
        result = draft_engine.start_draft(league_id, shuffle=shuffle)
        if result.success:
            get_scheduler().watch(league_id)
            st.success(result.message)
            st.rerun()
        else:
            st.error(result.message)
    st.stop()

if status['draft_status'] == 'in_progress':
    get_scheduler().watch(league_id)

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Pick", f"{status['current_pick']} / {status['total_picks']}")
    with col2:
        st.metric("Round", status['current_round'])
    with col3:
        remaining = status['time_remaining']
        st.metric("Time Left", "--" if remaining is None else f"{remaining:.0f}s")

    on_clock = status['team_on_clock']
    st.subheader(f"On the clock: {team_names.get(on_clock, on_clock)}")
    st.progress(
        (status['current_pick'] - 1) / status['total_picks'],
        text=f"{status['current_pick'] - 1} / {status['total_picks']} picks made",
    )

    if status['is_paused']:
        st.warning("⏸️ Draft is paused")
        if st.button("Resume Draft"):
            result = draft_engine.resume_draft(league_id)
            if result.success:
                get_scheduler().watch(league_id)
                st.rerun()
            st.error(result.message)
    else:
        col1, col2 = st.columns([3, 1])
        with col1:
            position = st.selectbox("Position:", options=['All', 'Guard', 'Forward', 'Center'])
            available = draft_engine.get_available_players(league_id, None if position == 'All' else position)

            player_options = {
                f"{row['player_name']} ({row['position']})": int(row['player_id'])
                for _, row in available.iterrows()
            }
            if player_options:
                selected_player = st.selectbox("Select Player:", options=list(player_options.keys()))

                if st.button("Make Pick", type="primary"):
                    result = draft_engine.pick(league_id, on_clock, player_options[selected_player])
                    if result.success:
                        st.success(result.message)
                        st.rerun()
                    else:
                        st.error(result.message)
        with col2:
            if st.button("Pause Draft"):
                result = draft_engine.pause_draft(league_id)
                if result.success:
                    get_scheduler().unwatch(league_id)
                    st.rerun()
                st.error(result.message)

    if st.button("🔄 Refresh"):
        st.rerun()
else:
    st.success("✅ Draft is complete!")
    get_scheduler().unwatch(league_id)

st.divider()

st.subheader("Draft Board")
picks = status['picks']
if not picks.empty:
    board = picks.copy()
    board['team'] = board['team_id'].map(lambda t: team_names.get(int(t)))
    players = data_loader.load_players()[['player_id', 'player_name', 'position']]
    board = board.merge(players, on='player_id', how='left')
    board = board[['pick_number', 'round', 'team', 'player_name', 'position', 'is_auto']]
    board.columns = ['Pick', 'Round', 'Team', 'Player', 'Position', 'Auto']
    st.dataframe(board, hide_index=True, use_container_width=True)
else:
    st.info("No picks yet.")

with st.expander("Draft Log"):
    st.dataframe(draft_engine.get_draft_history(league_id), hide_index=True, use_container_width=True)
