"""
Services layer for Liftwise business logic.
"""

from .ledger_service import LedgerService
from .progression_service import ProgrammeNotFoundError, ProgressionService
from .suggestion_service import SuggestionService

__all__ = ["LedgerService", "ProgrammeNotFoundError", "ProgressionService", "SuggestionService"]
