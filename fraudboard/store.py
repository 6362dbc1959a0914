"""
Persistent storage for scores and daily upload counters.

Two backends share the ScoreStore interface:

- DynamoScoreStore: a single DynamoDB table keyed by (userId, recordKey).
  Each owner partition holds one ``_quota`` item plus one ``score#...`` item
  per stored score. All counter mutations are single-item conditional
  updates, so several portal processes can share the table safely.
- InMemoryScoreStore: process-local dicts behind a lock, for tests and
  local development.
"""

import json
import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import boto3
import shortuuid
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import StorageUnavailableError

logger = logging.getLogger("fraudboard.store")

QUOTA_KEY = "_quota"
SCORE_PREFIX = "score#"

RETRYABLE_ERRORS = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'InternalServerError',
    'TransactionCanceledException'
}


@dataclass(frozen=True)
class Score:
    owner: str
    f1: float
    accuracy: float
    timestamp: datetime
    score_id: str = ""


@dataclass(frozen=True)
class QuotaRecord:
    owner: str
    count: int
    date: datetime


class QuotaLimitReached(Exception):
    """Raised by increment_quota when the conditional write hits the limit"""

    def __init__(self, count: int):
        super().__init__(f"Upload count {count} already at limit")
        self.count = count


class ScoreStore(ABC):
    """Storage operations the portal core depends on"""

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the backing store is reachable."""

    @abstractmethod
    def put_score(self, owner: str, f1: float, accuracy: float, timestamp: datetime) -> Score:
        pass

    @abstractmethod
    def delete_score(self, score: Score) -> None:
        pass

    @abstractmethod
    def list_scores(self, owner: Optional[str] = None) -> List[Score]:
        """All scores, or one owner's scores, in no particular order."""

    @abstractmethod
    def get_quota(self, owner: str) -> Optional[QuotaRecord]:
        pass

    @abstractmethod
    def increment_quota(self, owner: str, day_start: datetime, now: datetime, limit: int) -> int:
        """
        Atomically add one upload to ``owner``'s counter for the day starting
        at ``day_start``.

        A record dated before ``day_start`` (or no record) restarts at 1.

        Returns:
            The count after the increment

        Raises:
            QuotaLimitReached: If the same-day count is already >= limit
        """

    @abstractmethod
    def reset_quotas(self, now: datetime) -> int:
        """Zero every counter and stamp it with ``now``; returns records touched."""


def _new_score_id() -> str:
    return shortuuid.uuid()


# ============================================================================
# In-memory backend
# ============================================================================

class InMemoryScoreStore(ScoreStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._scores: Dict[str, Score] = {}
        self._quotas: Dict[str, QuotaRecord] = {}

    def ping(self) -> bool:
        return True

    def put_score(self, owner, f1, accuracy, timestamp):
        score = Score(owner=owner, f1=float(f1), accuracy=float(accuracy),
                      timestamp=timestamp, score_id=_new_score_id())
        with self._lock:
            self._scores[score.score_id] = score
        return score

    def delete_score(self, score):
        with self._lock:
            self._scores.pop(score.score_id, None)

    def list_scores(self, owner=None):
        with self._lock:
            scores = list(self._scores.values())
        if owner is not None:
            scores = [s for s in scores if s.owner == owner]
        return scores

    def get_quota(self, owner):
        with self._lock:
            return self._quotas.get(owner)

    def increment_quota(self, owner, day_start, now, limit):
        with self._lock:
            record = self._quotas.get(owner)
            if record is None or record.date < day_start:
                self._quotas[owner] = QuotaRecord(owner=owner, count=1, date=now)
                return 1
            if record.count >= limit:
                raise QuotaLimitReached(record.count)
            self._quotas[owner] = QuotaRecord(owner=owner, count=record.count + 1, date=record.date)
            return record.count + 1

    def reset_quotas(self, now):
        with self._lock:
            for owner in list(self._quotas):
                self._quotas[owner] = QuotaRecord(owner=owner, count=0, date=now)
            return len(self._quotas)


# ============================================================================
# DynamoDB backend
# ============================================================================

def retry_dynamo(op_fn, max_attempts=5, base_delay=0.05, max_delay=0.8):
    attempt = 0
    while True:
        try:
            return op_fn()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in RETRYABLE_ERRORS and attempt < max_attempts - 1:
                sleep_time = (base_delay * (2 ** attempt)) * (1 + random.random() * 0.5)
                sleep_time = min(sleep_time, max_delay)
                logger.warning(
                    f"DynamoDB error {code}, attempt {attempt+1}/{max_attempts}, sleeping {sleep_time:.3f}s"
                )
                time.sleep(sleep_time)
                attempt += 1
                continue
            raise


def _to_epoch(dt: datetime) -> Decimal:
    return Decimal(str(round(dt.timestamp(), 6)))


def _from_epoch(value) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get('Error', {}).get('Code')


class DynamoScoreStore(ScoreStore):

    def __init__(self, table_name: str, region_name: Optional[str] = None,
                 read_consistent: bool = True, table=None, client=None):
        """
        Args:
            table_name: DynamoDB table with hash key ``userId`` and range key
                ``recordKey`` (both strings)
            region_name: AWS region (boto3 default resolution when None)
            read_consistent: Use strongly consistent reads where DynamoDB allows
            table, client: Pre-built boto3 Table resource and client
        """
        self.table_name = table_name
        self.read_consistent = read_consistent
        if table is None:
            table = boto3.resource('dynamodb', region_name=region_name).Table(table_name)
        if client is None:
            client = boto3.client('dynamodb', region_name=region_name)
        self.table = table
        self.client = client

    @contextmanager
    def _operation(self, name: str, **fields):
        start_time = time.time()
        try:
            yield
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{name} failed: {e}")
            raise StorageUnavailableError(f"{name} failed: {e}") from e
        duration_ms = int((time.time() - start_time) * 1000)
        metrics = {'metric': name, 'table': self.table_name, 'durationMs': duration_ms}
        metrics.update(fields)
        logger.info(json.dumps(metrics))

    def ping(self):
        try:
            desc = self.client.describe_table(TableName=self.table_name)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"describe_table failed for {self.table_name}: {e}")
            return False
        return desc.get('Table', {}).get('TableStatus') in ('ACTIVE', 'UPDATING')

    def put_score(self, owner, f1, accuracy, timestamp):
        score_id = _new_score_id()
        item = {
            'userId': owner,
            'recordKey': f"{SCORE_PREFIX}{timestamp.astimezone(timezone.utc).isoformat()}#{score_id}",
            'scoreId': score_id,
            'f1': Decimal(str(f1)),
            'accuracy': Decimal(str(accuracy)),
            'timestamp': _to_epoch(timestamp),
        }
        with self._operation('put_score'):
            retry_dynamo(lambda: self.table.put_item(Item=item))
        return Score(owner=owner, f1=float(f1), accuracy=float(accuracy),
                     timestamp=timestamp, score_id=item['recordKey'])

    def delete_score(self, score):
        with self._operation('delete_score'):
            retry_dynamo(lambda: self.table.delete_item(
                Key={'userId': score.owner, 'recordKey': score.score_id}
            ))

    def _collect(self, fetch: Callable[..., dict], kwargs: dict) -> List[dict]:
        items = []
        while True:
            resp = retry_dynamo(lambda: fetch(**kwargs))
            items.extend(resp.get('Items', []))
            lek = resp.get('LastEvaluatedKey')
            if not lek:
                break
            kwargs['ExclusiveStartKey'] = lek
        return items

    @staticmethod
    def _item_to_score(item) -> Score:
        return Score(
            owner=item['userId'],
            f1=float(item['f1']),
            accuracy=float(item['accuracy']),
            timestamp=_from_epoch(item['timestamp']),
            score_id=item['recordKey'],
        )

    def list_scores(self, owner=None):
        if owner is not None:
            kwargs = {
                'KeyConditionExpression': Key('userId').eq(owner) & Key('recordKey').begins_with(SCORE_PREFIX),
                'ConsistentRead': self.read_consistent,
            }
            with self._operation('list_scores', strategy='partition_query'):
                items = self._collect(self.table.query, kwargs)
        else:
            kwargs = {
                'FilterExpression': Attr('recordKey').begins_with(SCORE_PREFIX),
                'ConsistentRead': self.read_consistent,
            }
            with self._operation('list_scores', strategy='scan'):
                items = self._collect(self.table.scan, kwargs)
        return [self._item_to_score(it) for it in items]

    def get_quota(self, owner):
        with self._operation('get_quota'):
            resp = retry_dynamo(lambda: self.table.get_item(
                Key={'userId': owner, 'recordKey': QUOTA_KEY},
                ConsistentRead=self.read_consistent
            ))
        item = resp.get('Item')
        if not item:
            return None
        return QuotaRecord(
            owner=owner,
            count=int(item.get('uploadCount', 0)),
            date=_from_epoch(item.get('quotaDate', 0)),
        )

    def _conditional_update(self, path: str, **kwargs) -> Optional[dict]:
        """update_item that returns None instead of raising when the condition fails."""
        with self._operation('increment_quota', path=path):
            try:
                return retry_dynamo(lambda: self.table.update_item(**kwargs))
            except ClientError as e:
                if _error_code(e) == 'ConditionalCheckFailedException':
                    return None
                raise

    def increment_quota(self, owner, day_start, now, limit, max_rounds=3):
        key = {'userId': owner, 'recordKey': QUOTA_KEY}
        day_start_ts = _to_epoch(day_start)
        for _ in range(max_rounds):
            resp = self._conditional_update(
                'same_day',
                Key=key,
                UpdateExpression='SET uploadCount = uploadCount + :inc',
                ConditionExpression='quotaDate >= :day_start AND uploadCount < :limit',
                ExpressionAttributeValues={':inc': 1, ':day_start': day_start_ts, ':limit': limit},
                ReturnValues='UPDATED_NEW'
            )
            if resp is not None:
                return int(resp['Attributes']['uploadCount'])

            # Missing or stale record restarts the day at 1
            resp = self._conditional_update(
                'new_day',
                Key=key,
                UpdateExpression='SET uploadCount = :one, quotaDate = :now',
                ConditionExpression='attribute_not_exists(userId) OR quotaDate < :day_start',
                ExpressionAttributeValues={':one': 1, ':now': _to_epoch(now), ':day_start': day_start_ts}
            )
            if resp is not None:
                return 1

            record = self.get_quota(owner)
            if record is not None and record.date >= day_start and record.count >= limit:
                raise QuotaLimitReached(record.count)
            logger.info(f"Quota record for {owner} changed concurrently, retrying")

        raise StorageUnavailableError(f"Quota update for {owner} kept conflicting")

    def reset_quotas(self, now):
        kwargs = {
            'FilterExpression': Attr('recordKey').eq(QUOTA_KEY),
            'ConsistentRead': self.read_consistent,
        }
        with self._operation('reset_quotas'):
            items = self._collect(self.table.scan, kwargs)
            now_ts = _to_epoch(now)
            for item in items:
                retry_dynamo(lambda: self.table.update_item(
                    Key={'userId': item['userId'], 'recordKey': QUOTA_KEY},
                    UpdateExpression='SET uploadCount = :zero, quotaDate = :now',
                    ExpressionAttributeValues={':zero': 0, ':now': now_ts}
                ))
        return len(items)


# ============================================================================
# Construction and startup connectivity
# ============================================================================

def build_store(config) -> ScoreStore:
    """Create the store selected by ``config.store_backend``."""
    if config.store_backend == "memory":
        logger.warning("Using in-memory store; scores are lost on restart")
        return InMemoryScoreStore()
    return DynamoScoreStore(
        table_name=config.table_name,
        region_name=config.aws_region,
        read_consistent=config.read_consistent,
    )


def wait_for_store(store: ScoreStore, retries: int = 5, delay: float = 5.0,
                   sleep: Callable[[float], None] = time.sleep) -> None:
    """
    Block until ``store.ping()`` succeeds.

    Raises:
        StorageUnavailableError: After ``retries`` failed attempts
    """
    for attempt in range(1, retries + 1):
        try:
            if store.ping():
                logger.info("Connected to score store")
                return
            reason = "store not ready"
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
        logger.error(f"Store connection attempt {attempt} failed: {reason}")
        if attempt < retries:
            logger.info(f"Retrying in {delay:g} seconds...")
            sleep(delay)
    raise StorageUnavailableError(f"Store unreachable after {retries} attempts")
