from datetime import date

from sqlalchemy import and_, or_

from ..extensions import db
from ..models import AuditRecord, Contract, Payment


class PaymentRepository:
    """Contract/payment storage used by the scheduler. Nothing here commits implicitly."""

    def __init__(self, session=None):
        self.session = session or db.session

    def find_contract_by_id(self, contract_id):
        return self.session.get(Contract, contract_id)

    def find_contract_for_user(self, contract_id, user_id, allow_tenant=False):
        """Contract owned by `user_id` (or rented by them when `allow_tenant`)."""
        owner = Contract.landlord_id == user_id
        if allow_tenant:
            owner = or_(owner, Contract.tenant_id == user_id)
        return (
            self.session.query(Contract)
            .filter(and_(Contract.id == contract_id, owner))
            .first()
        )

    def find_payments_by_contract_type_and_date_range(self, contract_id, payment_type, start: date, end: date):
        return (
            self.session.query(Payment)
            .filter(
                Payment.contract_id == contract_id,
                Payment.type == payment_type,
                Payment.due_date >= start,
                Payment.due_date <= end,
            )
            .order_by(Payment.due_date.asc())
            .all()
        )

    def create_payment(self, **fields):
        payment = Payment(**fields)
        self.session.add(payment)
        return payment

    def create_audit_record(self, **fields):
        record = AuditRecord(**fields)
        self.session.add(record)
        return record

    def flush(self):
        self.session.flush()

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
