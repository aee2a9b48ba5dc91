"""Core modules for the Ease Core purchase ledger and rank bot."""

from .audit import AuditLog
from .config import Config, RankTier, apply_env_overrides, load_config
from .errors import (
    AuthenticationError,
    CollaboratorError,
    ConfigurationError,
    PersistenceError,
    ValidationError,
)
from .ledger import LedgerStore
from .pipeline import IngestionPipeline
from .ranks import RankTable

__all__ = [
    "AuditLog",
    "Config",
    "RankTier",
    "apply_env_overrides",
    "load_config",
    "AuthenticationError",
    "CollaboratorError",
    "ConfigurationError",
    "PersistenceError",
    "ValidationError",
    "LedgerStore",
    "IngestionPipeline",
    "RankTable",
]
