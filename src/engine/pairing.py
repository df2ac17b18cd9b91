"""
Pairing generation for round-robin and knockout formats.
"""
import random
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .models import BYE


class TournamentFormat:
    def __init__(self, teams):
        self.teams = list(teams)

    def round_robin(self) -> List[Dict]:
        """
        All rounds of a single round-robin using the circle method.

        The first entry stays fixed while the rest rotate one position per round.
        An odd roster gets a BYE so every round has a resting team; pairs with
        the BYE are dropped. Deterministic for a given input order.

        Returns [{'round': 1, 'pairs': [(team_a, team_b), ...]}, ...]
        """
        working = list(self.teams)
        if len(working) < 2:
            return []
        if len(working) % 2 == 1:
            working.append(BYE)

        n = len(working)
        rounds = []
        for round_idx in range(n - 1):
            pairs = []
            for i in range(n // 2):
                first = working[i]
                second = working[n - 1 - i]
                if first == BYE or second == BYE:
                    continue
                # Alternate home side by pair index
                if i % 2 == 0:
                    pairs.append((first, second))
                else:
                    pairs.append((second, first))
            rounds.append({'round': round_idx + 1, 'pairs': pairs})
            working = [working[0], working[-1]] + working[1:-1]
        return rounds

    def knockout_round(self, rng: Optional[random.Random] = None) -> List[Tuple]:
        """
        Shuffle once, then pair neighbours (0-1, 2-3, ...).

        The caller guarantees an even, power-of-two sized list; a leftover entry
        is a configuration error.
        """
        rng = rng or random.Random()
        order = list(self.teams)
        rng.shuffle(order)
        if len(order) % 2 == 1:
            raise ConfigurationError(
                f"Cannot pair {len(order)} entries for a knockout round: "
                f"'{order[-1]}' has no opponent."
            )
        return [(order[i], order[i + 1]) for i in range(0, len(order), 2)]


def generate_round_robin_rounds(teams) -> List[Dict]:
    return TournamentFormat(teams).round_robin()


def generate_knockout_pairs(teams, rng: Optional[random.Random] = None) -> List[Tuple]:
    return TournamentFormat(teams).knockout_round(rng)
