"""
Bookkeeping Kernel - double-entry posting and consistency core.

The kernel owns every write to ledger history. It admits balanced
vouchers, numbers them per voucher type and financial year, materializes
per-account ledger rows with running balances, and records corrections
as linked reversal entries instead of edits.

Layers:
    db/         SQLAlchemy base classes, engine and column types
    domain/     pure values: voucher types, financial years, DTOs, validator
    models/     ORM persistence
    services/   imperative shell: registry, numbering, posting, corrections
    selectors/  read-only queries feeding the derived books
"""

__version__ = "0.1.0"
