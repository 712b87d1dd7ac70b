"""Failure types shared by the venue adapters, the gas estimator and the block subscriber."""
from __future__ import annotations


class ArbScannerError(Exception):
    """Base class for scanner failures."""


class RpcError(ArbScannerError):
    """A JSON-RPC call failed at the transport layer or returned an error payload."""


class VenueUnavailable(ArbScannerError):
    """A venue quote failed or returned non-economic data; the current cycle is abandoned."""

    def __init__(self, venue: str, reason: str) -> None:
        super().__init__(f"{venue} unavailable: {reason}")
        self.venue = venue
        self.reason = reason


class GasQueryFailed(ArbScannerError):
    """The live gas price could not be read; the current cycle is abandoned."""


class StreamDisconnected(ArbScannerError):
    """The block header stream is gone and could not be re-established."""
