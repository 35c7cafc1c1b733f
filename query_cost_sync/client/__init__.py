"""
Client for the remote query-cost service.

Provides the oracle that prices normalized queries.
"""

from .oracle import CostOracleClient, OracleResult

__all__ = ["CostOracleClient", "OracleResult"]
