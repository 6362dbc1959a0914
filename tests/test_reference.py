#!/usr/bin/env python3
"""
Tests for reference dataset loading.

Run with: pytest tests/test_reference.py -v
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from fraudboard.exceptions import ReferenceDatasetError, StorageUnavailableError
from fraudboard.reference import load_reference_set, parse_reference_csv, upload_format


def test_parses_labels_and_ids(make_csv):
    ref = parse_reference_csv(make_csv(["TransactionID", "isFraud", "amount"],
                                       [["A", 1, 9.5], ["B", 0, 3.0]]))
    assert len(ref) == 2
    assert ref.labels == (1, 0)
    assert ref.transaction_ids == ("A", "B")
    assert ref.has_transaction_ids
    assert ref.rows[0]["amount"] == "9.5"


def test_accepts_plain_fraud_column(make_csv):
    ref = parse_reference_csv(make_csv(["Fraud"], [[0], [1]]))
    assert ref.label_column == "Fraud"
    assert not ref.has_transaction_ids
    assert ref.transaction_ids is None


def test_rows_are_read_only(reference):
    with pytest.raises(TypeError):
        reference.rows[0]["FraudLabel"] = "0"


@pytest.mark.parametrize("payload", [b"", b"FraudLabel\n"])
def test_empty_reference_rejected(payload):
    with pytest.raises(ReferenceDatasetError):
        parse_reference_csv(payload)


def test_missing_label_column(make_csv):
    with pytest.raises(ReferenceDatasetError) as exc_info:
        parse_reference_csv(make_csv(["score"], [[1]]))
    assert "score" in str(exc_info.value)


def test_non_binary_reference_label(make_csv):
    with pytest.raises(ReferenceDatasetError) as exc_info:
        parse_reference_csv(make_csv(["isFraud"], [[1], [3]]))
    assert "row 2" in str(exc_info.value)


@pytest.mark.parametrize("payload", [
    b"isFraud\n1,0\n0,0\n1,0\n",
    b"FraudLabel\n1,\n0,\n1,\n",
])
def test_rows_wider_than_header_rejected(payload):
    with pytest.raises(ReferenceDatasetError) as exc_info:
        parse_reference_csv(payload)
    assert "more fields" in str(exc_info.value)


def test_duplicate_reference_ids(make_csv):
    with pytest.raises(ReferenceDatasetError):
        parse_reference_csv(make_csv(["TransactionID", "isFraud"], [["A", 1], ["A", 0]]))


def test_load_from_local_file(tmp_path, make_csv):
    path = tmp_path / "ideal_test.csv"
    path.write_bytes(make_csv(["FraudLabel"], [[1], [1], [0]]))
    ref = load_reference_set(str(path))
    assert ref.labels == (1, 1, 0)


def test_missing_local_file(tmp_path):
    with pytest.raises(StorageUnavailableError):
        load_reference_set(str(tmp_path / "nope.csv"))


@patch('fraudboard.reference.boto3.client')
def test_load_from_s3(mock_client, make_csv):
    s3 = MagicMock()
    s3.get_object.return_value = {"Body": io.BytesIO(make_csv(["isFraud"], [[0], [1]]))}
    mock_client.return_value = s3

    ref = load_reference_set("s3://datathon-bucket/answers/ideal_test.csv")

    s3.get_object.assert_called_once_with(Bucket="datathon-bucket", Key="answers/ideal_test.csv")
    assert ref.labels == (0, 1)


@patch('fraudboard.reference.boto3.client')
def test_s3_failure_is_storage_error(mock_client):
    s3 = MagicMock()
    s3.get_object.side_effect = ClientError(
        {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
    )
    mock_client.return_value = s3
    with pytest.raises(StorageUnavailableError):
        load_reference_set("s3://bucket/missing.csv")


def test_invalid_s3_uri():
    with pytest.raises(StorageUnavailableError):
        load_reference_set("s3://bucket-only")


def test_upload_format(reference, reference_with_ids):
    fmt = upload_format(reference)
    assert fmt["rowCount"] == 4
    assert fmt["idAlignment"] is False
    assert fmt["acceptedLabelColumns"] == ["isFraud", "FraudLabel"]
    assert fmt["allowedValues"] == [0, 1]
    assert upload_format(reference_with_ids)["idAlignment"] is True


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
