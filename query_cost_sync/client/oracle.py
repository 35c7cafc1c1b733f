"""
Cost oracle client.

Sends a normalized query to the remote cost service and extracts the
authoritative cost from the response extensions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException, Timeout

from ..core.errors import (
    CostSyncError,
    NetworkError,
    OracleStatusError,
    ResponseFormatError,
)
from ..storage.models import CostQuery

logger = logging.getLogger(__name__)

# Checked in order; the secondary field is only read when the primary is absent
PRIMARY_COST_FIELD = "requestedQueryCost"
SECONDARY_COST_FIELD = "actualQueryCost"


@dataclass(frozen=True)
class OracleResult:
    """Authoritative cost, or the reason it could not be obtained."""
    cost: Optional[int] = None
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.cost is not None


def extract_cost(body: Any) -> int:
    """Read the cost from ``extensions.cost`` of a decoded response body.

    Raises:
        ResponseFormatError: If neither cost field holds an integer
    """
    if not isinstance(body, dict):
        raise ResponseFormatError("Response body is not a JSON object")

    extensions = body.get("extensions")
    cost = extensions.get("cost") if isinstance(extensions, dict) else None
    if not isinstance(cost, dict):
        raise ResponseFormatError("Response has no extensions.cost object")

    for field_name in (PRIMARY_COST_FIELD, SECONDARY_COST_FIELD):
        if field_name not in cost or cost[field_name] is None:
            continue
        value = cost[field_name]
        # bool is an int subclass and never a valid cost
        if isinstance(value, bool) or not isinstance(value, int):
            raise ResponseFormatError(
                f"extensions.cost.{field_name} is not an integer: {value!r}"
            )
        return value

    raise ResponseFormatError(
        f"Response carries neither {PRIMARY_COST_FIELD} nor {SECONDARY_COST_FIELD}"
    )


class CostOracleClient:
    """Synchronous client for the query-cost service.

    One POST per query, no retries. Failures surface as exceptions from
    ``fetch_cost`` or as an ``OracleResult`` with a failure reason from
    ``query_cost``.
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_CREDENTIAL_HEADER = "X-Access-Token"

    def __init__(
        self,
        endpoint: str,
        credential: str,
        credential_header: str = DEFAULT_CREDENTIAL_HEADER,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the oracle client.

        Args:
            endpoint: Full versioned endpoint URL
            credential: Access token sent in the credential header
            credential_header: Header name carrying the credential
            timeout: HTTP request timeout in seconds
            session: Optional requests session to reuse

        Raises:
            ValueError: If endpoint or credential is missing/empty
        """
        if not endpoint or not endpoint.strip():
            raise ValueError("endpoint is required and cannot be empty")
        if not credential or not credential.strip():
            raise ValueError("credential is required and cannot be empty")

        self.endpoint = endpoint
        self.credential_header = credential_header
        self.timeout = timeout
        self._credential = credential
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            self.credential_header: self._credential,
        }

    def fetch_cost(self, query: CostQuery) -> int:
        """POST the query and return the authoritative cost.

        Raises:
            NetworkError: On transport failure or timeout
            OracleStatusError: On a non-success status code
            ResponseFormatError: On a malformed body or missing cost
        """
        try:
            response = self._session.post(
                self.endpoint,
                json=query.to_body(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except Timeout as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except RequestException as e:
            raise NetworkError(f"Request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise OracleStatusError(
                response.status_code,
                f"Cost service returned HTTP {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ResponseFormatError("Response body is not valid JSON") from e

        return extract_cost(body)

    def query_cost(self, query: CostQuery) -> OracleResult:
        """Like fetch_cost, but converts failures into an OracleResult."""
        try:
            return OracleResult(cost=self.fetch_cost(query))
        except CostSyncError as e:
            logger.warning("Cost query failed: %s", e)
            return OracleResult(failure=str(e))

    def close(self) -> None:
        self._session.close()


def build_endpoint(base_url: str, api_version: str, path: str = "graphql.json") -> str:
    """Join base URL, API version and path into the versioned endpoint."""
    parts = [base_url.rstrip("/"), api_version.strip("/")]
    if path:
        parts.append(path.lstrip("/"))
    return "/".join(parts)
