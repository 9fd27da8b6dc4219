"""Roster and starting-lineup composition rules.

Pure functions over position lists and counts, usable without any stored data.
"""

from typing import Dict, Iterable, List, NamedTuple

from fantasy_league.config import LeagueConfig


class Formation(NamedTuple):
    guards: int
    forwards: int
    centers: int

    @property
    def name(self) -> str:
        return f"{self.guards}-{self.forwards}-{self.centers}"

    def as_counts(self) -> Dict[str, int]:
        return {'Guard': self.guards, 'Forward': self.forwards, 'Center': self.centers}

    def slot_positions(self) -> List[str]:
        """Expected position for each starter slot, in slot order."""
        return ['Guard'] * self.guards + ['Forward'] * self.forwards + ['Center'] * self.centers


def minimum_counts() -> Dict[str, int]:
    return {
        'Guard': LeagueConfig.MIN_GUARDS,
        'Forward': LeagueConfig.MIN_FORWARDS,
        'Center': LeagueConfig.MIN_CENTERS,
    }


def parse_formation(formation: str) -> Formation:
    """
    Parse a formation id like '2-2-1'.

    Raises:
        ValueError: not one of the allowed formations
    """
    if formation not in LeagueConfig.FORMATIONS:
        raise ValueError(f"Unknown formation '{formation}'. Allowed: {', '.join(LeagueConfig.FORMATIONS)}")
    guards, forwards, centers = (int(part) for part in formation.split('-'))
    return Formation(guards, forwards, centers)


def count_positions(positions: Iterable[str]) -> Dict[str, int]:
    """Count Guards, Forwards and Centers in a list of positions."""
    counts = {position: 0 for position in LeagueConfig.POSITIONS}
    for position in positions:
        if position in counts:
            counts[position] += 1
    return counts


def has_valid_team_composition(counts: Dict[str, int]) -> bool:
    """Minimum: 3 Guards, 3 Forwards, 2 Centers."""
    return all(counts.get(position, 0) >= minimum for position, minimum in minimum_counts().items())


def has_valid_starting_lineup(starter_positions: Iterable[str], formation: str) -> bool:
    """
    Check slots 1-5 against a formation.

    Args:
        starter_positions: Positions of the players in starter slots 1-5
        formation: Formation id, e.g. '2-2-1'

    Returns:
        True if the position counts exactly equal the formation's (G, F, C) tuple
    """
    starter_positions = list(starter_positions)
    if len(starter_positions) != LeagueConfig.STARTERS_PER_LINEUP:
        return False
    try:
        expected = parse_formation(formation)
    except ValueError:
        return False
    return count_positions(starter_positions) == expected.as_counts()


def matches_formation_order(ordered_positions: List[str], formation: str) -> bool:
    """True if the first `guards` entries are Guards, then Forwards, then Centers."""
    try:
        expected = parse_formation(formation)
    except ValueError:
        return False
    return list(ordered_positions) == expected.slot_positions()


def can_add_position(counts: Dict[str, int], position: str, team_size: int) -> bool:
    """
    Check that adding a player still leaves room to reach the minimum composition.

    Only meaningful when team_size can hold the minimum at all; smaller rosters
    are never blocked.
    """
    minimums = minimum_counts()
    if team_size < sum(minimums.values()):
        return True

    after = dict(counts)
    after[position] = after.get(position, 0) + 1
    remaining_slots = team_size - sum(after.values())
    still_needed = sum(max(0, minimum - after.get(pos, 0)) for pos, minimum in minimums.items())
    return still_needed <= remaining_slots


def can_remove_position(counts: Dict[str, int], position: str) -> bool:
    """
    Check that removing a player keeps an already-valid composition valid.

    Rosters that are not yet valid can shed any position.
    """
    if not has_valid_team_composition(counts):
        return True
    after = dict(counts)
    after[position] = after.get(position, 0) - 1
    return has_valid_team_composition(after)
