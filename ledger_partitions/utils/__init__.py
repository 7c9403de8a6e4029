"""
Utilities package for the ledger partition manager.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from ledger_partitions.utils.logging import (
    ConsoleFormatter,
    JsonFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
