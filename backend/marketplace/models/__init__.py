from marketplace.models.user import User
from marketplace.models.offer import Offer
from marketplace.models.contract import Contract
from marketplace.models.payment import PaymentRecord
from marketplace.models.review import Review
from marketplace.models.balance import CreatorBalance
from marketplace.models.withdrawal import Withdrawal
from marketplace.models.audit_log import AuditLog

__all__ = [
    "User",
    "Offer",
    "Contract",
    "PaymentRecord",
    "Review",
    "CreatorBalance",
    "Withdrawal",
    "AuditLog",
]
