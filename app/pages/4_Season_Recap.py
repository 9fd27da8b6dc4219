"""Season Recap - Standings, round-by-round trends and the player leaderboard."""

import streamlit as st
import sys
from pathlib import Path
import altair as alt

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fantasy_league import data_loader, standings_updater

st.set_page_config(page_title="Season Recap", page_icon="🏆", layout="wide")

st.title("🏆 Season Recap")

# ── Load data ────────────────────────────────────────────────────────────────
leagues = data_loader.load_leagues()

if leagues.empty:
    st.warning("⚠️ No leagues yet.")
    st.stop()

league_options = {row['league_name']: int(row['league_id']) for _, row in leagues.iterrows()}
league_id = league_options[st.selectbox("League:", options=list(league_options.keys()))]
league = data_loader.get_league(league_id)

std = standings_updater.calculate_standings(league_id)
round_points = standings_updater.get_round_points_table(league_id)

# ── Guard ────────────────────────────────────────────────────────────────────
if std.empty or round_points.empty:
    st.warning("⚠️ No finalized rounds yet. Finalize rounds in the Admin Portal.")
    st.stop()

tab1, tab2, tab3 = st.tabs([
    "🥇 Standings",
    "📈 Round Trends",
    "🃏 Player Leaderboard",
])

# ═══════════════════════════════════════════════════════════════════════════════
# TAB 1  –  STANDINGS
# ═══════════════════════════════════════════════════════════════════════════════
with tab1:
    st.header("Standings")

    # Podium ─────────────────────────────────────────────────────────────────
    if len(std) >= 3:
        c1, c2, c3 = st.columns(3)
        for col, idx, emoji, label in [
            (c1, 0, "🥇", "Leader"),
            (c2, 1, "🥈", "2nd Place"),
            (c3, 2, "🥉", "3rd Place"),
        ]:
            row = std.iloc[idx]
            with col:
                with st.container(border=True):
                    st.markdown(f"### {emoji} {label}")
                    st.markdown(f"**{row['team_name']}**")
                    st.metric("Total Points", f"{row['total_points']:.1f}")

    st.divider()

    rank_icon = {1: "🥇", 2: "🥈", 3: "🥉"}
    disp = std[['rank', 'team_name', 'total_points', 'rounds_scored', 'avg_points_per_round']].copy()
    disp['rank'] = disp['rank'].map(lambda r: rank_icon.get(r, str(r)))
    disp.columns = ['Rank', 'Team', 'Total Points', 'Rounds', 'Avg / Round']
    st.dataframe(disp, hide_index=True, use_container_width=True)

    # Horizontal bar chart ────────────────────────────────────────────────────
    st.subheader("Points Gap")
    max_points = std['total_points'].max()
    chart = alt.Chart(std[['team_name', 'total_points']]).mark_bar().encode(
        x=alt.X('total_points:Q', title='Total Points'),
        y=alt.Y('team_name:N', sort='-x', title=''),
        color=alt.condition(
            alt.datum.total_points == max_points,
            alt.value('#FFD700'), alt.value('#4C78A8')
        ),
        tooltip=['team_name', alt.Tooltip('total_points:Q', format='.1f', title='Total')],
    ).properties(height=280)
    st.altair_chart(chart, use_container_width=True)

# ═══════════════════════════════════════════════════════════════════════════════
# TAB 2  –  ROUND TRENDS
# ═══════════════════════════════════════════════════════════════════════════════
with tab2:
    st.header("Round Trends")

    best = round_points.loc[round_points['round_points'].idxmax()]
    st.metric("Best Single Round", f"{best['round_points']:.1f}",
              help=f"{best['team_name']}, round {int(best['round'])}")

    line = alt.Chart(round_points).mark_line(point=True).encode(
        x=alt.X('round:O', title='Round'),
        y=alt.Y('cumulative_points:Q', title='Cumulative Points'),
        color=alt.Color('team_name:N', title='Team'),
        tooltip=['team_name', 'round',
                 alt.Tooltip('cumulative_points:Q', format='.1f', title='Cumul.')],
    ).properties(height=380)
    st.altair_chart(line, use_container_width=True)

    heat = alt.Chart(round_points).mark_rect().encode(
        x=alt.X('round:O', title='Round'),
        y=alt.Y('team_name:N', title=''),
        color=alt.Color('round_points:Q', title='Points'),
        tooltip=['team_name', 'round', alt.Tooltip('round_points:Q', format='.1f')],
    )
    st.altair_chart(heat, use_container_width=True)

# ═══════════════════════════════════════════════════════════════════════════════
# TAB 3  –  PLAYER LEADERBOARD
# ═══════════════════════════════════════════════════════════════════════════════
with tab3:
    st.header("Player Leaderboard")

    players = data_loader.load_players()
    players = players[players['championship_id'] == league['championship_id']]
    games = data_loader.load_games(league['championship_id'])
    scores = data_loader.load_player_game_scores()
    scores = scores[scores['game_id'].isin(games['game_id'])]

    if scores.empty:
        st.info("No player scores yet.")
    else:
        totals = scores.groupby('player_id')['fantasy_points'].agg(total_fp='sum', avg_fp='mean').reset_index()
        totals = totals.merge(players[['player_id', 'player_name', 'position']], on='player_id', how='inner')
        top15 = totals.sort_values('total_fp', ascending=False).head(15)

        bar = alt.Chart(top15).mark_bar().encode(
            x=alt.X('total_fp:Q', title='Total Fantasy Points'),
            y=alt.Y('player_name:N', sort='-x', title=''),
            color=alt.Color('position:N', title='Position'),
            tooltip=['player_name', 'position',
                     alt.Tooltip('total_fp:Q', format='.1f', title='Total FP'),
                     alt.Tooltip('avg_fp:Q', format='.1f', title='Avg FP')],
        ).properties(height=420)
        st.altair_chart(bar, use_container_width=True)
