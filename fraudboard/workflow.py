"""
End-to-end handling of one prediction upload, plus the per-owner reads that
accompany it (score history and stats).
"""

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Union

from .auth import Principal
from .config import DEFAULT_MAX_FILE_SIZE
from .exceptions import (
    AuthorizationError,
    FileTooLargeError,
    QuotaExceededError,
    StorageUnavailableError,
)
from .metrics import evaluate
from .normalizer import normalize_predictions
from .quota import QuotaTracker
from .reference import ReferenceSet
from .store import Score, ScoreStore

logger = logging.getLogger("fraudboard.workflow")

Upload = Union[bytes, bytearray, BinaryIO]


@dataclass(frozen=True)
class SubmissionResult:
    f1: float
    accuracy: float
    timestamp: datetime
    uploads_remaining: int
    score: Score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "f1_score": self.f1,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp.isoformat(),
            "uploadsRemaining": self.uploads_remaining,
        }


@dataclass(frozen=True)
class UserStats:
    total_submissions: int
    best_f1: Optional[float]
    uploads_today: int
    uploads_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_submissions": self.total_submissions,
            "best_f1": self.best_f1,
            "uploads_today": self.uploads_today,
            "uploads_remaining": self.uploads_remaining,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def payload_size(upload: Upload) -> int:
    """Size in bytes of raw bytes or a seekable binary file (position is kept)."""
    if isinstance(upload, (bytes, bytearray)):
        return len(upload)
    position = upload.tell()
    upload.seek(0, io.SEEK_END)
    size = upload.tell()
    upload.seek(position)
    return size


class SubmissionWorkflow:
    """
    Scores uploads against the reference set and records the result.

    Args:
        reference: Loaded reference dataset
        store: Score and quota storage
        quota: Daily upload tracker over the same store
        max_file_size: Largest accepted upload in bytes
        clock: Source of "now" (UTC-aware datetimes)
    """

    def __init__(self, reference: ReferenceSet, store: ScoreStore, quota: QuotaTracker,
                 max_file_size: int = DEFAULT_MAX_FILE_SIZE,
                 clock: Callable[[], datetime] = _utcnow):
        self.reference = reference
        self.store = store
        self.quota = quota
        self.max_file_size = max_file_size
        self.clock = clock

    def submit(self, principal: Optional[Principal], upload: Upload,
               now: Optional[datetime] = None) -> SubmissionResult:
        """
        Validate, score and persist one upload.

        Nothing is written unless the file scores successfully, and the
        upload counter only moves after the score is stored.

        Raises:
            AuthorizationError: No principal
            QuotaExceededError: Daily limit reached (before or during commit)
            SubmissionError: Any file format or row count problem
            StorageUnavailableError: The score could not be stored
        """
        if principal is None or not principal.owner_id:
            raise AuthorizationError("Unauthorized: No authenticated user")
        owner = principal.owner_id
        now = now or self.clock()

        status = self.quota.check_and_reserve(owner, now)

        size = payload_size(upload)
        if size > self.max_file_size:
            raise FileTooLargeError(self.max_file_size)

        normalized = normalize_predictions(upload, self.reference)
        result = evaluate(self.reference.labels, normalized.predictions)

        score = self.store.put_score(owner, result.f1, result.accuracy, now)
        logger.info(f"Stored score for {owner}: f1={result.f1:.4f} accuracy={result.accuracy:.4f}")

        try:
            used = self.quota.commit(owner, now)
        except QuotaExceededError:
            # A concurrent upload took the last slot; keep at most max scores per day
            logger.warning(f"Quota exhausted concurrently for {owner}; discarding score")
            try:
                self.store.delete_score(score)
            except StorageUnavailableError as e:
                logger.error(f"Could not discard score {score.score_id} for {owner}: {e}")
            raise
        except StorageUnavailableError as e:
            logger.warning(f"Score stored but upload count not updated for {owner}: {e}")
            used = status.used + 1

        return SubmissionResult(
            f1=result.f1,
            accuracy=result.accuracy,
            timestamp=now,
            uploads_remaining=max(0, self.quota.max_uploads - used),
            score=score,
        )

    def score_history(self, owner: str, limit: Optional[int] = None) -> List[Score]:
        """Owner's scores, newest first; ``limit`` of None or < 1 returns all."""
        scores = sorted(self.store.list_scores(owner), key=lambda s: s.timestamp, reverse=True)
        if limit and limit > 0:
            scores = scores[:limit]
        return scores

    def user_stats(self, owner: str, now: Optional[datetime] = None) -> UserStats:
        scores = self.store.list_scores(owner)
        status = self.quota.status(owner, now or self.clock())
        return UserStats(
            total_submissions=len(scores),
            best_f1=max((s.f1 for s in scores), default=None),
            uploads_today=status.used,
            uploads_remaining=status.remaining,
        )
