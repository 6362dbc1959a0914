"""
fraudboard - submission portal for a fraud-detection datathon

Participants upload CSV predictions; the portal scores them against a fixed
held-out answer set (F1 and accuracy), enforces a daily upload quota and
ranks participants on a leaderboard.

Example usage:
    from fraudboard import (
        InMemoryScoreStore, QuotaTracker, SubmissionWorkflow,
        Principal, build_leaderboard, load_reference_set,
    )

    reference = load_reference_set("ideal_test.csv")
    store = InMemoryScoreStore()
    workflow = SubmissionWorkflow(reference, store, QuotaTracker(store, max_uploads=5))

    with open("predictions.csv", "rb") as f:
        result = workflow.submit(Principal(username="alice"), f)
    print(result.f1, result.accuracy, result.uploads_remaining)

    for entry in build_leaderboard(store.list_scores(), limit=5):
        print(entry.rank, entry.owner, entry.f1)
"""

from ._version import __version__
from .auth import Principal, decode_token, issue_token, principal_from_header
from .exceptions import (
    PortalError,
    SubmissionError,
    EmptyFileError,
    MalformedFileError,
    MissingColumnError,
    InvalidValueError,
    MissingPredictionError,
    RowCountMismatchError,
    FileTooLargeError,
    QuotaExceededError,
    StorageUnavailableError,
    ReferenceDatasetError,
    AuthorizationError,
    ForbiddenError,
    ConfigError,
)
from .leaderboard import LeaderboardEntry, build_leaderboard
from .metrics import accuracy, f1_score, evaluate
from .normalizer import NormalizedSubmission, normalize_predictions
from .quota import DailyResetScheduler, QuotaStatus, QuotaTracker
from .reference import ReferenceSet, load_reference_set, parse_reference_csv
from .store import DynamoScoreStore, InMemoryScoreStore, Score, ScoreStore
from .workflow import SubmissionResult, SubmissionWorkflow

__all__ = [
    "__version__",
    "Principal",
    "decode_token",
    "issue_token",
    "principal_from_header",
    "PortalError",
    "SubmissionError",
    "EmptyFileError",
    "MalformedFileError",
    "MissingColumnError",
    "InvalidValueError",
    "MissingPredictionError",
    "RowCountMismatchError",
    "FileTooLargeError",
    "QuotaExceededError",
    "StorageUnavailableError",
    "ReferenceDatasetError",
    "AuthorizationError",
    "ForbiddenError",
    "ConfigError",
    "LeaderboardEntry",
    "build_leaderboard",
    "accuracy",
    "f1_score",
    "evaluate",
    "NormalizedSubmission",
    "normalize_predictions",
    "DailyResetScheduler",
    "QuotaStatus",
    "QuotaTracker",
    "ReferenceSet",
    "load_reference_set",
    "parse_reference_csv",
    "DynamoScoreStore",
    "InMemoryScoreStore",
    "Score",
    "ScoreStore",
    "SubmissionResult",
    "SubmissionWorkflow",
]
