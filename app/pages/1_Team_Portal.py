"""Team Portal - View roster, set lineups, trade on the market, check round scores."""

import streamlit as st
import sys
from pathlib import Path

import altair as alt

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fantasy_league import (
    data_loader, draft_engine, lineup_manager, marketplace, roster_validator, score_calculator, standings_updater
)
from fantasy_league.config import FORMATIONS, STARTERS_PER_LINEUP

st.set_page_config(page_title="Team Portal", page_icon="👤")

st.title("👤 Team Portal")


def show_result(result):
    """Render an OperationResult and refresh on success."""
    if result.success:
        st.success(result.message)
        st.rerun()
    else:
        st.error(result.message)


# Team selection
teams = data_loader.load_teams()
leagues = data_loader.load_leagues()

if teams.empty:
    st.info("No teams yet. Ask the admin to set up a league.")
    st.stop()

teams = teams.merge(leagues[['league_id', 'league_name', 'mode']], on='league_id', how='left')

if 'selected_team_id' not in st.session_state:
    st.session_state.selected_team_id = None

team_options = {
    f"{row['team_name']} ({row['league_name']})": int(row['team_id'])
    for _, row in teams.iterrows()
}

selected_option = st.selectbox(
    "Select Your Team:",
    options=["-- Select Team --"] + list(team_options.keys()),
    index=0 if st.session_state.selected_team_id not in team_options.values() else
          list(team_options.values()).index(st.session_state.selected_team_id) + 1
)

if selected_option == "-- Select Team --":
    st.stop()

team_id = team_options[selected_option]
st.session_state.selected_team_id = team_id

team = data_loader.get_team(team_id)
league = data_loader.get_league(int(team['league_id']))
championship_id = league['championship_id']

st.subheader(f"Welcome, {team['team_name']}!")

col1, col2, col3 = st.columns(3)
with col1:
    st.metric("Total Points", f"{float(team['total_points']):.1f}")
with col2:
    st.metric("Rank", standings_updater.get_team_rank(int(team['league_id']), team_id))
with col3:
    if league['mode'] == 'budget':
        st.metric("Budget Left", f"{float(team['budget_remaining']):,.0f}")
    else:
        st.metric("Draft", str(league['draft_status']).replace('_', ' ').title())

if league['mode'] == 'draft' and not draft_engine.validate_draft_complete(int(league['league_id'])):
    st.warning("⚠️ Draft not complete yet. Head to the Draft Room!")

active_round = lineup_manager.get_active_round(championship_id)
if active_round is not None:
    st.error(f"🔒 Round {active_round} is in progress. Rosters and lineups are locked until all games finish.")

tab_names = ["Set Lineup", "Round Scores", "Transaction Log"]
if league['mode'] == 'budget':
    tab_names.insert(1, "Market")
tabs = dict(zip(tab_names, st.tabs(tab_names)))

with tabs["Set Lineup"]:
    st.header("Set Lineup")

    roster = draft_engine.get_team_roster(team_id)

    if roster.empty:
        st.info("No players on your roster yet.")
    else:
        state = lineup_manager.get_validation_state(team_id)
        if not state['has_valid_team_composition']:
            counts = state['position_counts']
            st.warning(
                f"⚠️ Roster below minimum composition: {counts['Guard']} G / "
                f"{counts['Forward']} F / {counts['Center']} C (need 3 / 3 / 2)"
            )

        current_formation = team['lineup_type'] if isinstance(team['lineup_type'], str) else FORMATIONS[0]
        formation = st.selectbox("Formation:", options=list(FORMATIONS),
                                 index=list(FORMATIONS).index(current_formation))
        slots = roster_validator.parse_formation(formation).slot_positions()

        current = roster.sort_values('lineup_position')
        starters = []
        for slot, position in enumerate(slots, start=1):
            pool = roster[roster['position'] == position]
            options = {row['player_name']: int(row['player_id']) for _, row in pool.iterrows()}
            in_slot = current[current['lineup_position'] == slot]
            default = in_slot['player_name'].iloc[0] if not in_slot.empty and in_slot['player_name'].iloc[0] in options else None
            names = list(options.keys())
            choice = st.selectbox(
                f"Slot {slot} ({position}):",
                options=names,
                index=names.index(default) if default in names else 0,
                key=f"slot_{team_id}_{formation}_{slot}",
            )
            if choice:
                starters.append(options[choice])

        reserves = roster[~roster['player_id'].isin(starters)]
        sixth_options = {"-- None --": None}
        sixth_options.update({row['player_name']: int(row['player_id']) for _, row in reserves.iterrows()})
        sixth_choice = st.selectbox("Sixth Man:", options=list(sixth_options.keys()))

        st.caption(f"Selected starters: {len(set(starters))} / {STARTERS_PER_LINEUP}")

        if st.button("Save Lineup", type="primary", disabled=active_round is not None):
            show_result(lineup_manager.set_lineup(team_id, starters, formation, sixth_man_id=sixth_options[sixth_choice]))

        if st.button("Auto-Generate Lineup", disabled=active_round is not None):
            show_result(lineup_manager.auto_generate(team_id))

        in_lineup = roster[roster['lineup_position'].notna()]
        if not in_lineup.empty:
            captain_options = {row['player_name']: int(row['player_id']) for _, row in in_lineup.iterrows()}
            captain = st.selectbox("Captain:", options=list(captain_options.keys()))
            if st.button("Set Captain", disabled=active_round is not None):
                show_result(lineup_manager.set_captain(team_id, captain_options[captain]))

if "Market" in tabs:
    with tabs["Market"]:
        st.header("Player Market")

        col1, col2 = st.columns(2)
        with col1:
            position = st.selectbox("Position:", options=['all', 'Guard', 'Forward', 'Center'])
        with col2:
            search = st.text_input("Search:")

        market = marketplace.get_market(team_id, position=position, search=search or None)

        if market.empty:
            st.info("No players match.")
        else:
            display_market = market[['player_name', 'position', 'price', 'affordable']].copy()
            display_market.columns = ['Player', 'Position', 'Price', 'Affordable']
            st.dataframe(display_market, hide_index=True, use_container_width=True)

            buy_options = {
                f"{row['player_name']} ({row['position']}, {row['price']:,.0f})": int(row['player_id'])
                for _, row in market[market['affordable']].iterrows()
            }
            if buy_options:
                to_buy = st.selectbox("Buy:", options=list(buy_options.keys()))
                if st.button("Buy Player", type="primary", disabled=active_round is not None):
                    show_result(marketplace.buy(team_id, buy_options[to_buy]))

        st.divider()
        st.subheader("Sell")

        roster = draft_engine.get_team_roster(team_id)
        if not roster.empty:
            st.caption(
                f"Team value: {marketplace.get_team_value(team_id):,.0f} | "
                f"Profit/Loss: {marketplace.get_profit_loss(team_id):+,.0f}"
            )
            sell_options = {
                f"{row['player_name']} ({row['position']}, bought {row['purchase_price']:,.0f}, now {row['price']:,.0f})":
                    int(row['player_id'])
                for _, row in roster.iterrows()
            }
            to_sell = st.selectbox("Sell:", options=list(sell_options.keys()))
            if st.button("Sell Player", disabled=active_round is not None):
                show_result(marketplace.sell(team_id, sell_options[to_sell]))

with tabs["Round Scores"]:
    st.header("Round Scores")

    current_round = lineup_manager.get_current_round(championship_id)
    round_number = st.number_input("Round:", min_value=1, value=current_round)

    view = lineup_manager.get_lineup_view(team_id, int(round_number))

    if view['is_round_finished']:
        st.metric(f"Round {view['round']} Points", f"{view['round_total_points']:.2f}")
        columns = ['player_name', 'position', 'tier', 'is_captain', 'multiplier', 'round_fantasy_points', 'round_team_points']
        display = view['players'][columns].copy()
        display.columns = ['Player', 'Position', 'Tier', 'Captain', 'Multiplier', 'Fantasy Points', 'Team Points']
    else:
        st.info(f"Round {view['round']} scores appear once every game of the round is finished.")
        display = view['players'][['player_name', 'position', 'tier', 'is_captain', 'multiplier']].copy()
        display.columns = ['Player', 'Position', 'Tier', 'Captain', 'Multiplier']

    st.dataframe(display, hide_index=True, use_container_width=True)

    history = score_calculator.get_team_round_history(team_id)
    if not history.empty:
        st.subheader("Points by Round")
        chart = alt.Chart(history).mark_bar().encode(
            x=alt.X('round:O', title='Round'),
            y=alt.Y('round_points:Q', title='Team Points'),
            tooltip=['round', alt.Tooltip('round_points:Q', format='.2f', title='Points')],
        )
        st.altair_chart(chart, use_container_width=True)

with tabs["Transaction Log"]:
    st.header("Transaction Log")

    log = data_loader.load_transaction_log()
    my_log = log[log['team_id'] == team_id].sort_values('timestamp', ascending=False)

    if my_log.empty:
        st.info("No transactions yet.")
    else:
        display_log = my_log[['timestamp', 'transaction_type', 'details', 'amount']].copy()
        display_log.columns = ['Time', 'Type', 'Details', 'Amount']
        st.dataframe(display_log, hide_index=True, use_container_width=True)
