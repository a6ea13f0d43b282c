"""Read-only collaborators the monitoring core samples from.

Each module defines a Protocol for the collaborator and a SQLAlchemy
implementation over the marketplace tables (or psutil, for host resources).
"""

from marketpulse.sources.logs import LogStore, RequestStats, SqlLogStore
from marketpulse.sources.resources import PsutilResourceProbe, ResourceProbe
from marketpulse.sources.sessions import SessionStore, SqlSessionStore
from marketpulse.sources.transactions import (
    SqlTransactionStore,
    TransactionStore,
    TransactionSummary,
)

__all__ = [
    "LogStore",
    "PsutilResourceProbe",
    "RequestStats",
    "ResourceProbe",
    "SessionStore",
    "SqlLogStore",
    "SqlSessionStore",
    "SqlTransactionStore",
    "TransactionStore",
    "TransactionSummary",
]
