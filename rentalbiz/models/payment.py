import uuid
from datetime import datetime

from sqlalchemy.orm import validates

from ..extensions import db


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contract_id = db.Column(db.String(36), db.ForeignKey("contracts.id"), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, index=True)       # 'rent' | 'electricity' | 'water' | 'gas' | ...
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="MXN")
    due_date = db.Column(db.Date, nullable=False, index=True)
    due_month = db.Column(db.String(7), nullable=False)                # 'YYYY-MM', follows due_date
    status = db.Column(db.String(20), nullable=False, default="pending")  # 'pending' | 'approved' | 'paid' | 'overdue' | ...
    is_automatic = db.Column(db.Boolean, nullable=False, default=False)
    reference_number = db.Column(db.String(100), unique=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    contract = db.relationship("Contract", backref=db.backref("payments", lazy="dynamic"))

    __table_args__ = (
        # one payment per category per calendar month
        db.UniqueConstraint("contract_id", "type", "due_month", name="uq_payments_contract_type_due_month"),
        db.CheckConstraint("amount >= 0", name="ck_payments_amount"),
        db.Index("ix_payments_status_due_date", "status", "due_date"),
    )

    @validates("due_date")
    def _sync_due_month(self, key, value):
        self.due_month = value.strftime("%Y-%m") if value is not None else None
        return value

    def serialize(self):
        return {
            "id": self.id,
            "due_date": self.due_date.isoformat(),
            "amount": float(self.amount),
            "status": self.status,
        }
