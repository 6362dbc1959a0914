"""
Turns an uploaded prediction CSV into a label sequence aligned with the
reference set.

The file is read in chunks so large uploads never sit in memory as a single
DataFrame. Only the label column (and the TransactionID column when both
sides have one) is kept.
"""

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple, Union

import pandas as pd

from . import columns
from .exceptions import (
    EmptyFileError,
    InvalidValueError,
    MalformedFileError,
    MissingColumnError,
    MissingPredictionError,
    RowCountMismatchError,
)
from .reference import ReferenceSet

logger = logging.getLogger("fraudboard.normalizer")

DEFAULT_CHUNK_ROWS = 50_000


@dataclass(frozen=True)
class NormalizedSubmission:
    predictions: Tuple[int, ...]
    label_column: str
    id_column: Optional[str] = None
    aligned: bool = False

    def __len__(self) -> int:
        return len(self.predictions)


def _read_chunks(handle: BinaryIO, chunk_rows: int) -> Iterator[pd.DataFrame]:
    try:
        with pd.read_csv(
            handle,
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            encoding="utf-8-sig",
            chunksize=chunk_rows,
        ) as reader:
            for chunk in reader:
                yield chunk
    except pd.errors.EmptyDataError:
        raise EmptyFileError()
    except pd.errors.ParserError as e:
        raise MalformedFileError(str(e).strip()) from e
    except UnicodeDecodeError as e:
        raise MalformedFileError("File is not UTF-8 encoded text") from e


def _has_implicit_index(frame: pd.DataFrame) -> bool:
    """
    True when pandas used leading fields as the row index.

    read_csv does this silently when every data row carries more fields than
    the header row (trailing commas included), shifting values left so that
    header names no longer line up with their cells.
    """
    return not isinstance(frame.index, pd.RangeIndex)


def _parse_label(raw, row: int) -> int:
    cell = raw if isinstance(raw, str) else ""
    value = cell.strip()
    if value not in ("0", "1"):
        raise InvalidValueError(row, cell)
    return int(value)


def normalize_predictions(source: Union[bytes, bytearray, BinaryIO],
                          reference: ReferenceSet,
                          chunk_rows: int = DEFAULT_CHUNK_ROWS) -> NormalizedSubmission:
    """
    Validate an uploaded CSV and return predictions in reference order.

    Args:
        source: Raw CSV bytes or a binary file object positioned at the start
        reference: The loaded reference set
        chunk_rows: Rows parsed per chunk

    Returns:
        NormalizedSubmission whose predictions line up with reference.labels

    Raises:
        EmptyFileError: No data rows
        MalformedFileError: The payload is not parseable CSV, or its rows are
            wider than the header row
        MissingColumnError: No isFraud/FraudLabel column
        InvalidValueError: A label is not 0/1, or a TransactionID repeats
        MissingPredictionError: A reference TransactionID has no prediction
        RowCountMismatchError: Prediction count differs from the reference
    """
    handle = io.BytesIO(bytes(source)) if isinstance(source, (bytes, bytearray)) else source

    label_column: Optional[str] = None
    id_column: Optional[str] = None
    align = False
    predictions: List[int] = []
    by_id: Dict[str, int] = {}
    first_seen: Dict[str, int] = {}
    row_count = 0

    for chunk in _read_chunks(handle, chunk_rows):
        if chunk.empty:
            continue
        if _has_implicit_index(chunk):
            raise MalformedFileError(
                "Data rows have more fields than the header row; "
                "remove trailing commas or name every column"
            )
        if label_column is None:
            label_column = columns.find_column(chunk.columns, columns.LABEL)
            if label_column is None:
                raise MissingColumnError(
                    columns.SUBMISSION_COLUMNS[columns.LABEL], map(str, chunk.columns)
                )
            id_column = columns.find_column(chunk.columns, columns.TRANSACTION_ID)
            align = id_column is not None and reference.has_transaction_ids

        labels = chunk[label_column].tolist()
        ids = chunk[id_column].tolist() if align else None
        for offset, raw in enumerate(labels):
            row = row_count + offset + 1
            value = _parse_label(raw, row)
            if not align:
                predictions.append(value)
                continue
            raw_id = ids[offset]
            tid = raw_id.strip() if isinstance(raw_id, str) else ""
            if tid in by_id:
                raise InvalidValueError(
                    row, tid, f"duplicates the TransactionID at row {first_seen[tid]}"
                )
            by_id[tid] = value
            first_seen[tid] = row
        row_count += len(labels)

    if row_count == 0:
        raise EmptyFileError()

    expected = len(reference)
    if align:
        for tid in reference.transaction_ids:
            if tid not in by_id:
                raise MissingPredictionError(tid)
        if row_count != expected:
            raise RowCountMismatchError(expected, row_count)
        predictions = [by_id[tid] for tid in reference.transaction_ids]
    elif len(predictions) != expected:
        raise RowCountMismatchError(expected, len(predictions))

    logger.debug(
        f"Normalized {row_count} rows (label column '{label_column}', aligned={align})"
    )
    return NormalizedSubmission(
        predictions=tuple(predictions),
        label_column=label_column,
        id_column=id_column,
        aligned=align,
    )
