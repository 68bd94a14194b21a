import uuid
from datetime import datetime

from ..extensions import db


class Contract(db.Model):
    __tablename__ = "contracts"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contract_number = db.Column(db.String(50), unique=True, nullable=False)
    landlord_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    monthly_rent = db.Column(db.Numeric(12, 2), nullable=False)
    payment_day = db.Column(db.Integer, nullable=False, default=1)  # 1..28
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    landlord = db.relationship("User", foreign_keys=[landlord_id])
    tenant = db.relationship("User", foreign_keys=[tenant_id])

    __table_args__ = (
        db.CheckConstraint("payment_day BETWEEN 1 AND 28", name="ck_contracts_payment_day"),
        db.Index("ix_contracts_start_end", "start_date", "end_date"),
    )

    @property
    def is_active(self):
        return self.status == "active"
