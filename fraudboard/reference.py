"""
Reference (ground-truth) dataset loading.

The reference set is read once at startup from a local CSV file or an
``s3://bucket/key`` URI and is never mutated afterwards. It is passed
explicitly to whatever needs it.
"""

import io
import logging
import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

from . import columns
from .exceptions import ReferenceDatasetError, StorageUnavailableError

logger = logging.getLogger("fraudboard.reference")


@dataclass(frozen=True)
class ReferenceSet:
    """Immutable held-out labels used to score every submission"""
    rows: Tuple[Mapping[str, str], ...]
    label_column: str
    labels: Tuple[int, ...]
    id_column: Optional[str] = None
    transaction_ids: Optional[Tuple[str, ...]] = None

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def has_transaction_ids(self) -> bool:
        return self.id_column is not None


def _read_source(source: str) -> bytes:
    if source.startswith("s3://"):
        parsed = urlparse(source)
        bucket, key = parsed.netloc, parsed.path.lstrip("/")
        if not bucket or not key:
            raise StorageUnavailableError(f"Invalid S3 URI for reference dataset: {source}")
        try:
            s3 = boto3.client("s3")
            response = s3.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailableError(f"Could not fetch reference dataset {source}: {e}") from e

    if not os.path.exists(source):
        raise StorageUnavailableError(f"Reference dataset not found: {source}")
    try:
        with open(source, "rb") as f:
            return f.read()
    except OSError as e:
        raise StorageUnavailableError(f"Could not read reference dataset {source}: {e}") from e


def parse_reference_csv(payload: bytes) -> ReferenceSet:
    """
    Build a ReferenceSet from raw CSV bytes.

    Raises:
        ReferenceDatasetError: If the CSV is empty, unparseable, has no
            recognizable label column or holds labels other than 0/1
    """
    try:
        df = pd.read_csv(
            io.BytesIO(payload),
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        raise ReferenceDatasetError("Reference dataset is empty")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ReferenceDatasetError(f"Reference dataset is not valid CSV: {e}") from e

    if df.empty:
        raise ReferenceDatasetError("Reference dataset has no rows")
    # Rows wider than the header make pandas turn leading fields into the index
    if not isinstance(df.index, pd.RangeIndex):
        raise ReferenceDatasetError(
            "Reference dataset rows have more fields than its header row"
        )

    label_column = columns.find_column(df.columns, columns.LABEL, columns.REFERENCE_COLUMNS)
    if label_column is None:
        accepted = ", ".join(sorted(columns.REFERENCE_COLUMNS[columns.LABEL]))
        raise ReferenceDatasetError(
            f"Reference dataset missing label column (accepted: {accepted}); "
            f"found: {', '.join(map(str, df.columns))}"
        )
    id_column = columns.find_column(df.columns, columns.TRANSACTION_ID, columns.REFERENCE_COLUMNS)

    labels = []
    for idx, raw in enumerate(df[label_column].tolist(), start=1):
        value = raw.strip()
        if value not in ("0", "1"):
            raise ReferenceDatasetError(
                f"Reference label at row {idx} is '{raw}', expected 0 or 1"
            )
        labels.append(int(value))

    transaction_ids = None
    if id_column is not None:
        transaction_ids = tuple(v.strip() for v in df[id_column].tolist())
        if len(set(transaction_ids)) != len(transaction_ids):
            raise ReferenceDatasetError(
                f"Reference column '{id_column}' contains duplicate identifiers"
            )

    records: Tuple[Dict[str, Any], ...] = tuple(df.to_dict(orient="records"))
    return ReferenceSet(
        rows=tuple(MappingProxyType(dict(r)) for r in records),
        label_column=label_column,
        labels=tuple(labels),
        id_column=id_column,
        transaction_ids=transaction_ids,
    )


def load_reference_set(source: str) -> ReferenceSet:
    """
    Load the reference dataset from a path or S3 URI.

    Args:
        source: Local file path or ``s3://bucket/key``

    Returns:
        ReferenceSet

    Raises:
        StorageUnavailableError: If the source cannot be read
        ReferenceDatasetError: If the content is unusable
    """
    reference = parse_reference_csv(_read_source(source))
    logger.info(
        f"Reference dataset loaded from {source}: {len(reference)} rows, "
        f"label column '{reference.label_column}', "
        f"id column '{reference.id_column}'"
    )
    return reference


def upload_format(reference: ReferenceSet) -> Dict[str, Any]:
    """Describe what an upload must look like to be accepted."""
    return {
        "labelColumn": columns.DISPLAY_NAMES[columns.LABEL][0],
        "acceptedLabelColumns": list(columns.DISPLAY_NAMES[columns.LABEL]),
        "idColumn": columns.DISPLAY_NAMES[columns.TRANSACTION_ID][0],
        "idAlignment": reference.has_transaction_ids,
        "allowedValues": [0, 1],
        "rowCount": len(reference),
    }
