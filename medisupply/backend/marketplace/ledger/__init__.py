from .service import (
    LedgerEntry,
    TRANSACTION_KINDS,
    adjust_credits,
    get_balance,
    get_credit_summary,
    get_history,
    record_transaction,
)

__all__ = [
    'LedgerEntry',
    'TRANSACTION_KINDS',
    'adjust_credits',
    'get_balance',
    'get_credit_summary',
    'get_history',
    'record_transaction',
]
