"""
Idempotency ledger rows: one per accepted inbound webhook, keyed by fingerprint.
"""
from billing_sync.extensions import db
from billing_sync.utils.timeutils import isoformat, utcnow


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(20), nullable=False)
    event_type = db.Column(db.String(100), nullable=False)
    fingerprint = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # Raw body as received, for audit and replay
    payload = db.Column(db.Text, nullable=False)

    processed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    outcome = db.Column(db.String(20), nullable=True)

    received_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    attempted_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    # Lease held by the delivery currently working on the row; cleared on failure.
    locked_until = db.Column(db.DateTime, nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "event_type": self.event_type,
            "fingerprint": self.fingerprint,
            "processed": self.processed,
            "processed_at": isoformat(self.processed_at),
            "outcome": self.outcome,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    def __repr__(self):
        return f"<WebhookEvent {self.fingerprint} processed={self.processed}>"
