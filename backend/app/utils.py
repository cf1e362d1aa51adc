import time
from typing import Iterable, List

from .models import LeaderboardEntry


def now_ts() -> float:
    return time.time()


def rank_leaderboard(entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
    # sorted() is stable, so equal scores keep their insertion order
    return sorted(entries, key=lambda e: -e.score)
