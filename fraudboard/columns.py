"""
Accepted header spellings for the columns the portal understands.

Headers are matched case-insensitively after trimming surrounding whitespace.
The reference dataset accepts a slightly wider label vocabulary than uploads.
"""

from typing import Dict, FrozenSet, Iterable, Optional

LABEL = "label"
TRANSACTION_ID = "transaction_id"

# canonical name -> accepted lower-case spellings
SUBMISSION_COLUMNS: Dict[str, FrozenSet[str]] = {
    LABEL: frozenset({"isfraud", "fraudlabel"}),
    TRANSACTION_ID: frozenset({"transactionid"}),
}

REFERENCE_COLUMNS: Dict[str, FrozenSet[str]] = {
    LABEL: frozenset({"fraudlabel", "isfraud", "fraud"}),
    TRANSACTION_ID: frozenset({"transactionid"}),
}

# Spellings advertised to clients by the upload-format endpoint
DISPLAY_NAMES = {
    LABEL: ("isFraud", "FraudLabel"),
    TRANSACTION_ID: ("TransactionID",),
}


def find_column(headers: Iterable[str], canonical: str,
                table: Dict[str, FrozenSet[str]] = SUBMISSION_COLUMNS) -> Optional[str]:
    """
    Return the first header matching one of the aliases for ``canonical``.

    Args:
        headers: Header names exactly as they appear in the file
        canonical: Canonical column name (LABEL or TRANSACTION_ID)
        table: Alias table to consult

    Returns:
        The original header string, or None if nothing matches
    """
    aliases = table[canonical]
    for header in headers:
        if str(header).strip().lower() in aliases:
            return header
    return None
