from ..extensions import db
from .audit_log import AuditRecord
from .contract import Contract
from .payment import Payment
from .user import User

__all__ = ["db", "AuditRecord", "Contract", "Payment", "User"]
