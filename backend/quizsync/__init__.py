"""Quiz result caching, server sync and the quiz-state API."""

from .client import create_quiz_status_controller
from .controller import QuizStatusSnapshot, ReconciliationController
from .identity import AccountSession
from .local_cache import LocalResultCache
from .merge import merge_stored_quiz_results
from .models import EnhancedQuizResult, StoredQuizResult, StoredTravelType, SyncResult

__all__ = [
    "AccountSession",
    "EnhancedQuizResult",
    "LocalResultCache",
    "QuizStatusSnapshot",
    "ReconciliationController",
    "StoredQuizResult",
    "StoredTravelType",
    "SyncResult",
    "create_quiz_status_controller",
    "merge_stored_quiz_results",
]
