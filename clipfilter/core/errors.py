"""
Engine Error Taxonomy
=====================

Exceptions and failure kinds shared by the engine. Components below the
executor raise these; the executor catches them at its boundary and turns
them into a failed ``FilterOutcome`` so a bad network or an empty clipboard
never escapes as a process-level error.

Author: clipfilter Project
"""

from enum import Enum


# ============================================================================
# FAILURE KINDS
# ============================================================================

class FailureKind(Enum):
    """Category of a failed filter run."""
    CONFIGURATION = "configuration"  # No provider/template match
    ACQUISITION = "acquisition"      # Clipboard empty or wrong kind, encode failure
    TRANSPORT = "transport"          # Connection or status failure
    EXTRACTION = "extraction"        # Path miss, empty or undecodable result
    OUTPUT = "output"                # Clipboard write failed
    BUSY = "busy"                    # Another run is in flight
    PERSISTENCE = "persistence"      # Definition or config file I/O


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ClipFilterError(Exception):
    """Base exception for all clipfilter errors."""
    kind = FailureKind.CONFIGURATION


class ConfigurationError(ClipFilterError):
    """Raised when no provider or template can serve a filter."""
    kind = FailureKind.CONFIGURATION


class AcquisitionError(ClipFilterError):
    """Raised when clipboard input cannot be read or encoded."""
    kind = FailureKind.ACQUISITION


class TransportError(ClipFilterError):
    """Raised when an HTTP exchange fails outright."""
    kind = FailureKind.TRANSPORT


class ExtractionError(ClipFilterError):
    """Raised when no usable result can be pulled from a response."""
    kind = FailureKind.EXTRACTION


class PersistenceError(ClipFilterError):
    """Raised when a definition or configuration file cannot be read or written."""
    kind = FailureKind.PERSISTENCE


class ClipboardError(ClipFilterError):
    """Raised by clipboard sinks when the platform clipboard cannot be acquired."""
    kind = FailureKind.OUTPUT


class ModelDiscoveryError(ClipFilterError):
    """Raised when a provider's model list cannot be fetched or is empty."""
    kind = FailureKind.TRANSPORT
