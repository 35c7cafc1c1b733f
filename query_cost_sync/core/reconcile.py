"""
Cost reconciliation.

Compares the cost declared in an artifact with the cost observed from the
oracle. Pure functions only; no I/O.

Rules, in order:
1. Payload extraction failed -> EXTRACTION_FAILED
2. Oracle call failed -> QUERY_FAILED
3. Declared cost missing -> PROCESSING_ERROR
4. delta = observed - declared; 0 -> MATCH, > 0 -> UNDERESTIMATED,
   < 0 -> OVERESTIMATED
"""

from typing import Optional, Tuple

from ..storage.models import (
    ERROR,
    NOT_APPLICABLE,
    Classification,
    ComparisonRecord,
)


def reconcile(
    declared: Optional[int],
    observed: Optional[int],
    payload_found: bool = True,
) -> Tuple[Optional[int], Classification]:
    """Classify a declared/observed cost pair.

    Args:
        declared: Cost literal found in the artifact, None if absent
        observed: Cost returned by the oracle, None if the call failed
        payload_found: Whether the artifact's query payload was located

    Returns:
        (delta, classification); delta is None unless both costs are present
    """
    if not payload_found:
        return None, Classification.EXTRACTION_FAILED
    if observed is None:
        return None, Classification.QUERY_FAILED
    if declared is None:
        return None, Classification.PROCESSING_ERROR

    delta = observed - declared
    if delta == 0:
        return delta, Classification.MATCH
    if delta > 0:
        # Artifact under-declares what the service will charge
        return delta, Classification.UNDERESTIMATED
    return delta, Classification.OVERESTIMATED


def build_record(
    file_name: str,
    declared: Optional[int],
    observed: Optional[int],
    payload_found: bool = True,
) -> ComparisonRecord:
    """Build a report row whose classification comes from reconcile()."""
    delta, classification = reconcile(declared, observed, payload_found)

    if classification == Classification.EXTRACTION_FAILED:
        actual = NOT_APPLICABLE
    elif observed is None:
        actual = ERROR
    else:
        actual = observed

    return ComparisonRecord(
        file_name=file_name,
        expected_cost=declared if declared is not None else NOT_APPLICABLE,
        actual_cost=actual,
        classification=classification,
        difference=delta if delta is not None else NOT_APPLICABLE,
    )


def processing_error_record(file_name: str, declared: Optional[int] = None) -> ComparisonRecord:
    """Row for an artifact that failed before it could be reconciled."""
    return ComparisonRecord(
        file_name=file_name,
        expected_cost=declared if declared is not None else NOT_APPLICABLE,
        actual_cost=ERROR,
        classification=Classification.PROCESSING_ERROR,
        difference=NOT_APPLICABLE,
    )
