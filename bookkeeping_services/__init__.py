"""
bookkeeping_services -- Orchestration over the kernel and the pure engines.

Responsibility:
    BooksService reads one snapshot for each derived book,
    ReconciliationService persists bank statement matching, and Bookkeeper
    is the transactional boundary external collaborators call.

Architecture position:
    Services -- may import bookkeeping_kernel, bookkeeping_engines and
    bookkeeping_config.  Nothing in the kernel or the engines imports
    this package.
"""

from bookkeeping_services.bookkeeper import Bookkeeper, BookkeepingResult, ResultStatus
from bookkeeping_services.books_service import BooksService
from bookkeeping_services.reconciliation_service import (
    ReconciliationService,
    ReconciliationSummary,
    StatementReconciliation,
)

__all__ = [
    "Bookkeeper",
    "BookkeepingResult",
    "BooksService",
    "ReconciliationService",
    "ReconciliationSummary",
    "ResultStatus",
    "StatementReconciliation",
]
