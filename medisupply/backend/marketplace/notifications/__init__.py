from .events import (
    LowCredits,
    NewRFQ,
    QuotationStatusChanged,
    QuotationSubmitted,
    RFQClosed,
    VerificationDecided,
)
from .fanout import notify

__all__ = [
    'LowCredits',
    'NewRFQ',
    'QuotationStatusChanged',
    'QuotationSubmitted',
    'RFQClosed',
    'VerificationDecided',
    'notify',
]
