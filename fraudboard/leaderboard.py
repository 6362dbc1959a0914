"""
Leaderboard aggregation over stored scores.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List

import pandas as pd

from .store import Score

DEFAULT_LIMIT = 5


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    owner: str
    f1: float
    accuracy: float
    submitted_at: datetime
    submissions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "user_id": self.owner,
            "f1_score": self.f1,
            "accuracy": self.accuracy,
            "last_submission": self.submitted_at.isoformat(),
            "submissions": self.submissions,
        }


def build_leaderboard(scores: Iterable[Score], limit: int = DEFAULT_LIMIT) -> List[LeaderboardEntry]:
    """
    Rank owners by their best F1.

    Each owner is represented by the score with the highest F1; among equal
    F1 values the earliest submission wins. Owners are ordered by that F1
    (descending) and then by its timestamp (ascending).

    Args:
        scores: Every stored score
        limit: Number of entries to return; values below 1 use the default

    Returns:
        At most ``limit`` LeaderboardEntry objects, rank 1 first
    """
    if limit is None or limit < 1:
        limit = DEFAULT_LIMIT

    scores = list(scores)
    if not scores:
        return []

    df = pd.DataFrame({
        "owner": [s.owner for s in scores],
        "f1": [s.f1 for s in scores],
        "ts": [s.timestamp.timestamp() for s in scores],
    })
    counts = df.groupby("owner").size()

    # mergesort is stable, so the first row per owner is its best, earliest score
    ranked = df.sort_values(["f1", "ts", "owner"], ascending=[False, True, True], kind="mergesort")
    best = ranked.drop_duplicates(subset="owner", keep="first").head(limit)

    entries = []
    for rank, idx in enumerate(best.index, start=1):
        score = scores[idx]
        entries.append(LeaderboardEntry(
            rank=rank,
            owner=score.owner,
            f1=score.f1,
            accuracy=score.accuracy,
            submitted_at=score.timestamp,
            submissions=int(counts[score.owner]),
        ))
    return entries
