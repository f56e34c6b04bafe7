from billing_sync.extensions import db
from billing_sync.utils.timeutils import isoformat, utcnow


class PaymentRecord(db.Model):
    """Append-only ledger of successful charges."""

    __tablename__ = "payment_records"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    subscription_id = db.Column(
        db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True
    )
    provider = db.Column(db.String(20), nullable=False)
    external_payment_id = db.Column(db.String(255), unique=True, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="usd")
    status = db.Column(db.String(30), nullable=False, default="succeeded")
    payment_method = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @classmethod
    def exists(cls, external_payment_id):
        return (
            db.session.query(cls.id).filter_by(external_payment_id=external_payment_id).first()
            is not None
        )

    def to_dict(self):
        return {
            "payment_id": self.external_payment_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "payment_method": self.payment_method,
            "created_at": isoformat(self.created_at),
        }
