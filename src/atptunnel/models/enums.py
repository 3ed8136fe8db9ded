"""
Enumeration types for atptunnel.

This module defines the enumeration types used for logging configuration
and for reporting how a single forwarded connection ended.
"""

from enum import Enum


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"


# =============================================================================
# Forwarding Enums
# =============================================================================


class ForwardOutcome(str, Enum):
    """
    How a forwarding task for one accepted connection finished.

    Stages run in order: dial -> preamble -> relay. The first failing stage
    determines the outcome.
    """

    COMPLETED = "completed"  # Both relay directions reached EOF
    DIAL_FAILED = "dial_failed"  # Could not connect to the target
    PREAMBLE_FAILED = "preamble_failed"  # Could not write the preamble
    RELAY_FAILED = "relay_failed"  # I/O error while relaying
