"""Budget-mode player marketplace: buy and sell under budget and roster rules."""

import logging
from datetime import datetime
from typing import List, Optional

import pandas as pd

from fantasy_league import data_loader, draft_engine, lineup_manager, locks, roster_validator
from fantasy_league.config import LeagueConfig
from fantasy_league.errors import (
    BudgetError,
    CapacityError,
    CompositionError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
    operation,
    parse_id,
)

logger = logging.getLogger(__name__)


def _load_budget_team(team_id: int):
    team = data_loader.get_team(team_id)
    league = data_loader.get_league(int(team['league_id']))
    if league['mode'] != 'budget':
        raise StateError("The marketplace is only open in budget leagues")
    return team, league


def _log_market_transaction(team: pd.Series, transaction_type: str, player: pd.Series, amount: float) -> None:
    data_loader.append_rows('transaction_log', [{
        'timestamp': data_loader.now(),
        'league_id': int(team['league_id']),
        'team_id': int(team['team_id']),
        'transaction_type': transaction_type,
        'player_id': int(player['player_id']),
        'amount': amount,
        'details': player['player_name'],
    }])


def sell_credit(slot: pd.Series, player: pd.Series) -> float:
    """Amount credited for selling a player under LeagueConfig.SELL_PRICE_POLICY."""
    policy = LeagueConfig.SELL_PRICE_POLICY
    if policy == 'market':
        return float(player['price'])
    if policy == 'purchase':
        return float(slot['purchase_price'])
    raise ValueError(f"Unknown sell price policy: {policy}")


@operation
def buy(team_id: int, player_id: int, now: Optional[datetime] = None):
    """Buy a player at the current market price."""
    player_id = parse_id(player_id)

    with locks.team_lock(team_id, reason='buy'), data_loader.transaction():
        team, league = _load_budget_team(team_id)
        lineup_manager.ensure_round_unlocked(league['championship_id'], now)

        player = data_loader.get_player(player_id)
        if not bool(player['is_active']) or player['championship_id'] != league['championship_id']:
            raise ValidationError(f"{player['player_name']} is not available in this league")

        roster = draft_engine.get_team_roster(team_id)
        team_size = int(league['team_size'])

        if (roster['player_id'] == player_id).any():
            raise ConflictError("You already own this player.")

        if len(roster) >= team_size:
            raise CapacityError(f"Your team is full. Maximum {team_size} players allowed.")

        price = float(player['price'])
        if float(team['budget_remaining']) < price:
            raise BudgetError("Insufficient budget to buy this player.")

        counts = roster_validator.count_positions(roster['position'])
        if not roster_validator.can_add_position(counts, player['position'], team_size):
            raise CompositionError(
                f"Cannot buy this {player['position']}. You need to keep room for the minimum "
                f"{LeagueConfig.MIN_GUARDS} Guards, {LeagueConfig.MIN_FORWARDS} Forwards and "
                f"{LeagueConfig.MIN_CENTERS} Centers."
            )

        data_loader.append_rows('roster_slots', [{
            'team_id': team_id,
            'player_id': player_id,
            'purchase_price': price,
            'lineup_position': None,
            'is_captain': False,
            'acquired_at': now or data_loader.now(),
        }])
        budget_spent = float(team['budget_spent']) + price
        budget_remaining = float(team['budget_remaining']) - price
        data_loader.update_team(team_id, budget_spent=budget_spent, budget_remaining=budget_remaining)
        _log_market_transaction(team, 'buy', player, price)

    logger.info("Team %s bought player %s for %.0f", team_id, player_id, price)
    return f"You bought {player['player_name']}!", {
        'player_id': player_id,
        'price': price,
        'budget_spent': budget_spent,
        'budget_remaining': budget_remaining,
    }


@operation
def sell(team_id: int, player_id: int, now: Optional[datetime] = None):
    """
    Sell a player back to the market.

    The credit follows LeagueConfig.SELL_PRICE_POLICY. budget_spent is net
    spend, so a sale above the purchase price can take it below zero while
    budget_spent + budget_remaining stays equal to the league budget.
    """
    player_id = parse_id(player_id)

    with locks.team_lock(team_id, reason='sell'), data_loader.transaction():
        team, league = _load_budget_team(team_id)

        slots = data_loader.load_roster_slots()
        slot_mask = (slots['team_id'] == team_id) & (slots['player_id'] == player_id)
        if not slot_mask.any():
            raise NotFoundError("You do not own this player.")

        lineup_manager.ensure_round_unlocked(league['championship_id'], now)

        player = data_loader.get_player(player_id)
        roster = draft_engine.get_team_roster(team_id)
        counts = roster_validator.count_positions(roster['position'])
        if not roster_validator.can_remove_position(counts, player['position']):
            raise CompositionError(
                f"Cannot sell this {player['position']}. Your team must keep at least "
                f"{roster_validator.minimum_counts()[player['position']]} {player['position']}s."
            )

        credit = sell_credit(slots[slot_mask].iloc[0], player)
        data_loader.save_roster_slots(slots[~slot_mask])

        budget_spent = float(team['budget_spent']) - credit
        budget_remaining = float(team['budget_remaining']) + credit
        data_loader.update_team(team_id, budget_spent=budget_spent, budget_remaining=budget_remaining)
        _log_market_transaction(team, 'sell', player, credit)

    logger.info("Team %s sold player %s for %.0f", team_id, player_id, credit)
    return f"You sold {player['player_name']}!", {
        'player_id': player_id,
        'credit': credit,
        'budget_spent': budget_spent,
        'budget_remaining': budget_remaining,
    }


def get_market(team_id: int, position: Optional[str] = None, search: Optional[str] = None,
               sort: str = 'price', ascending: bool = False) -> pd.DataFrame:
    """Players the team could buy: active, in the league's championship, not already owned."""
    team = data_loader.get_team(team_id)
    league = data_loader.get_league(int(team['league_id']))
    players = data_loader.load_players()

    owned = draft_engine.get_team_roster(team_id)['player_id']
    players = players[
        players['is_active']
        & (players['championship_id'] == league['championship_id'])
        & ~players['player_id'].isin(owned)
    ]

    if position and position != 'all':
        players = players[players['position'] == position]
    if search:
        players = players[players['player_name'].str.contains(search, case=False, na=False)]

    players = players.assign(affordable=players['price'] <= float(team['budget_remaining']))
    return players.sort_values([sort, 'player_id'], ascending=[ascending, True])


def get_team_value(team_id: int) -> float:
    """Current market value of a team's roster."""
    roster = draft_engine.get_team_roster(team_id)
    return float(roster['price'].fillna(0).sum()) if not roster.empty else 0.0


def get_profit_loss(team_id: int) -> float:
    """Current roster value minus what was paid for it."""
    roster = draft_engine.get_team_roster(team_id)
    if roster.empty:
        return 0.0
    return float(roster['price'].fillna(0).sum() - roster['purchase_price'].sum())


# ── Price history ──────────────────────────────────────────────────────────

def record_round_prices(championship_id: int, round_number: int, force: bool = False) -> int:
    """
    Snapshot catalog prices for a finished round.

    Every player in the championship gets one row for the round, with the
    fantasy points they averaged in it (empty if they didn't play). A round
    that already has rows is left alone unless force is set.

    Returns:
        Number of rows written
    """
    if not lineup_manager.is_round_finished(championship_id, round_number):
        return 0

    games = data_loader.load_games(championship_id)
    round_game_ids = games.loc[games['round'] == round_number, 'game_id']
    scores = data_loader.load_player_game_scores()
    played = scores[scores['game_id'].isin(round_game_ids)].groupby('player_id')['fantasy_points'].agg(['mean', 'count'])

    players = data_loader.load_players()
    players = players[players['championship_id'] == championship_id]

    with data_loader.transaction():
        history = data_loader.load_price_history()
        round_mask = (history['championship_id'] == championship_id) & (history['round'] == round_number)
        if round_mask.any() and not force:
            return 0

        recorded_at = data_loader.now()
        rows = []
        for _, player in players.iterrows():
            player_id = int(player['player_id'])
            games_played = int(played.at[player_id, 'count']) if player_id in played.index else 0
            rows.append({
                'championship_id': championship_id,
                'round': round_number,
                'player_id': player_id,
                'price': float(player['price']),
                'average_fantasy_points': float(played.at[player_id, 'mean']) if games_played else None,
                'games_played_in_round': games_played,
                'recorded_at': recorded_at,
            })
        new_rows = pd.DataFrame(rows, columns=data_loader.PROCESSED_TABLES['price_history'])

        kept = history[~round_mask]
        data_loader.save_price_history(new_rows if kept.empty else pd.concat([kept, new_rows], ignore_index=True))

    logger.info("Recorded %d prices for championship %s round %s", len(new_rows), championship_id, round_number)
    return len(new_rows)


def record_finished_round_prices(championship_id: int) -> List[int]:
    """
    Record prices for every finished round not yet in the history.

    Returns:
        Rounds that got new rows
    """
    games = data_loader.load_games(championship_id)
    recorded = []
    for round_number in sorted(int(r) for r in games['round'].dropna().unique()):
        if record_round_prices(championship_id, round_number):
            recorded.append(round_number)
    return recorded


def get_price_history(player_id: int) -> pd.DataFrame:
    """A player's recorded price per round, oldest first."""
    history = data_loader.load_price_history()
    return history[history['player_id'] == player_id].sort_values('round').reset_index(drop=True)


def get_price_change(player_id: int) -> Optional[float]:
    """Price movement between the last two recorded rounds, or None with fewer than two."""
    history = get_price_history(player_id)
    if len(history) < 2:
        return None
    return float(history['price'].iloc[-1] - history['price'].iloc[-2])
