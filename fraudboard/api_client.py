"""
API client for the fraudboard portal.

Provides:
- Dataclasses for leaderboard and score responses
- Automatic retries for network and 5xx errors on idempotent requests
- Structured exceptions mirroring the portal's error responses
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import get_api_base_url

logger = logging.getLogger("fraudboard.api_client")


# ============================================================================
# Exceptions
# ============================================================================

class ApiClientError(Exception):
    """Base exception for API client errors"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class NotFoundError(ApiClientError):
    """Raised when a resource is not found (404)"""
    pass


class AuthError(ApiClientError):
    """Raised when the token is missing or rejected (401/403)"""
    pass


class ValidationError(ApiClientError):
    """Raised when an upload is rejected as malformed (400/413/422)"""
    pass


class QuotaError(ApiClientError):
    """Raised when the daily upload limit is reached (429)"""

    @property
    def next_reset(self) -> Optional[str]:
        return self.payload.get("nextReset")


class ServerError(ApiClientError):
    """Raised when server returns 5xx error"""
    pass


# ============================================================================
# Dataclasses
# ============================================================================

@dataclass
class LeaderboardRow:
    """One participant's best score"""
    rank: int
    user_id: str
    f1_score: float
    accuracy: float
    last_submission: Optional[str] = None
    submissions: int = 0


@dataclass
class UploadReceipt:
    """Result of a successful upload"""
    f1_score: float
    accuracy: float
    timestamp: str
    uploads_remaining: int


# ============================================================================
# API Client
# ============================================================================

class PortalApiClient:
    """
    Client for the portal REST API.

    Args:
        api_base_url: Explicit base URL; discovered from the environment if None
        token: Bearer token for authenticated endpoints (falls back to
            FRAUDBOARD_TOKEN)
        timeout: Request timeout in seconds (default: 30)
    """

    def __init__(self, api_base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: int = 30):
        self.api_base_url = (api_base_url or get_api_base_url()).rstrip("/")
        self.token = token or os.getenv("FRAUDBOARD_TOKEN")
        self.timeout = timeout
        self.session = self._create_session()
        logger.info(f"PortalApiClient initialized with base URL: {self.api_base_url}")

    def _create_session(self) -> requests.Session:
        session = requests.Session()

        # Uploads are not idempotent (each one consumes quota), so only GETs retry
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,  # 1s, 2s, 4s
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _headers(self, auth: bool) -> Dict[str, str]:
        if not auth:
            return {}
        if not self.token:
            raise AuthError("No token configured; pass token= or set FRAUDBOARD_TOKEN")
        return {"Authorization": f"Bearer {self.token}"}

    @staticmethod
    def _payload(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"error": response.text}
        return body if isinstance(body, dict) else {"data": body}

    def _request(self, method: str, path: str, auth: bool = False, **kwargs) -> requests.Response:
        """
        Make an HTTP request and translate error statuses.

        Raises:
            NotFoundError, AuthError, ValidationError, QuotaError, ServerError,
            ApiClientError
        """
        url = f"{self.api_base_url}/{path.lstrip('/')}"
        headers = kwargs.pop("headers", {})
        headers.update(self._headers(auth))

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                timeout=kwargs.pop("timeout", self.timeout),
                **kwargs
            )
        except requests.exceptions.Timeout as e:
            raise ApiClientError(f"Request timeout: {e}")
        except requests.exceptions.ConnectionError as e:
            raise ApiClientError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            raise ApiClientError(f"Request failed: {e}")

        status = response.status_code
        if status < 400:
            return response

        payload = self._payload(response)
        message = payload.get("error") or f"HTTP {status}"
        if payload.get("details"):
            message = f"{message}: {payload['details']}"

        if status == 404:
            raise NotFoundError(f"Resource not found: {path}", status, payload)
        if status in (401, 403):
            raise AuthError(message, status, payload)
        if status == 429:
            raise QuotaError(message, status, payload)
        if status in (400, 413, 422):
            raise ValidationError(message, status, payload)
        if 500 <= status < 600:
            raise ServerError(f"Server error {status}: {message}", status, payload)
        raise ApiClientError(message, status, payload)

    # ========================================================================
    # Public endpoints
    # ========================================================================

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health").json()

    def row_count(self) -> int:
        return int(self._request("GET", "/row-count").json()["rowCount"])

    def upload_format(self) -> Dict[str, Any]:
        return self._request("GET", "/upload-format").json()

    def leaderboard(self, limit: int = 5) -> List[LeaderboardRow]:
        """
        Fetch the top ``limit`` participants.

        Returns:
            LeaderboardRow objects, best first
        """
        data = self._request("GET", "/leaderboard", params={"limit": limit}).json()
        return [
            LeaderboardRow(
                rank=row.get("rank", idx),
                user_id=row["user_id"],
                f1_score=float(row["f1_score"]),
                accuracy=float(row["accuracy"]),
                last_submission=row.get("last_submission"),
                submissions=int(row.get("submissions", 0)),
            )
            for idx, row in enumerate(data.get("leaderboard", []), start=1)
        ]

    # ========================================================================
    # Authenticated endpoints
    # ========================================================================

    def upload(self, csv_file: Union[str, bytes, BinaryIO],
               filename: str = "predictions.csv") -> UploadReceipt:
        """
        Upload a prediction CSV for scoring.

        Args:
            csv_file: Path to a CSV file, raw bytes, or an open binary file
            filename: Name reported for bytes/file-object uploads

        Raises:
            QuotaError: Daily limit reached
            ValidationError: File rejected
        """
        if isinstance(csv_file, str):
            with open(csv_file, "rb") as f:
                return self.upload(f.read(), filename=os.path.basename(csv_file))

        files = {"file": (filename, csv_file, "text/csv")}
        data = self._request("POST", "/upload", auth=True, files=files).json()
        return UploadReceipt(
            f1_score=float(data["f1_score"]),
            accuracy=float(data["accuracy"]),
            timestamp=data["timestamp"],
            uploads_remaining=int(data["uploadsRemaining"]),
        )

    def scores(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """Own score history and stats."""
        params = {"limit": limit} if limit else None
        return self._request("GET", "/scores", auth=True, params=params).json()

    def verify_token(self) -> Dict[str, Any]:
        return self._request("GET", "/verify-token", auth=True).json()
