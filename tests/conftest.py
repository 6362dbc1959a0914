"""Shared fixtures for fraudboard tests."""

from datetime import datetime, timezone

import pytest

from fraudboard.quota import QuotaTracker
from fraudboard.reference import parse_reference_csv
from fraudboard.store import InMemoryScoreStore

REFERENCE_LABELS = [1, 0, 1, 1]
REFERENCE_IDS = ["T1", "T2", "T3", "T4"]


def _csv_bytes(header, rows, newline="\n"):
    lines = [",".join(header)] + [",".join(str(v) for v in row) for row in rows]
    return (newline.join(lines) + newline).encode("utf-8")


@pytest.fixture
def make_csv():
    """Build CSV bytes from a header list and a list of rows."""
    return _csv_bytes


@pytest.fixture
def secret():
    return "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture
def noon():
    """Midday UTC, far from any midnight boundary."""
    return datetime(2024, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def reference():
    """Four-row reference set (labels 1,0,1,1) without TransactionIDs."""
    return parse_reference_csv(_csv_bytes(["FraudLabel"], [[v] for v in REFERENCE_LABELS]))


@pytest.fixture
def reference_with_ids():
    """Four-row reference set (labels 1,0,1,1) keyed by TransactionIDs T1..T4."""
    rows = [[tid, label] for tid, label in zip(REFERENCE_IDS, REFERENCE_LABELS)]
    return parse_reference_csv(_csv_bytes(["TransactionID", "isFraud"], rows))


@pytest.fixture
def store():
    return InMemoryScoreStore()


@pytest.fixture
def tracker(store):
    """Quota tracker with a 3-upload limit and UTC midnight."""
    return QuotaTracker(store, max_uploads=3, tz=timezone.utc)
