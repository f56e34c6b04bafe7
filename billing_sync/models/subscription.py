from billing_sync.extensions import db
from billing_sync.utils.timeutils import isoformat, utcnow


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)

    # At most one live row per user; cancelled rows are kept, never deleted.
    user_id = db.Column(
        db.String(64), db.ForeignKey("profiles.id"), unique=True, nullable=False, index=True
    )

    provider = db.Column(db.String(20), nullable=False)
    external_subscription_id = db.Column(db.String(255), nullable=False, index=True)
    external_price_id = db.Column(db.String(255), nullable=True)
    external_customer_id = db.Column(db.String(255), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False)

    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    # Newest provider-declared event time applied; older events are stale.
    last_event_at = db.Column(db.DateTime, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    payments = db.relationship(
        "PaymentRecord",
        backref="subscription",
        lazy="dynamic",
        order_by="PaymentRecord.created_at.desc()",
    )

    __table_args__ = (
        db.UniqueConstraint("provider", "external_subscription_id", name="uq_subscription_external"),
        db.CheckConstraint(
            "status IN ('incomplete', 'active', 'cancelled')",
            name="valid_subscription_status",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def find_external(cls, provider, external_subscription_id):
        if not external_subscription_id:
            return None
        return cls.query.filter_by(
            provider=provider, external_subscription_id=external_subscription_id
        ).first()

    @classmethod
    def for_user(cls, user_id):
        if not user_id:
            return None
        return cls.query.filter_by(user_id=user_id).first()

    def refresh_period(self, start, end):
        if start:
            self.current_period_start = start
        if end:
            self.current_period_end = end

    def touch(self, occurred_at):
        """Stamp a state change. Only provider timestamps move last_event_at."""
        self.updated_at = utcnow()
        if occurred_at and (self.last_event_at is None or occurred_at > self.last_event_at):
            self.last_event_at = occurred_at

    def is_stale(self, occurred_at):
        return (
            occurred_at is not None
            and self.last_event_at is not None
            and occurred_at < self.last_event_at
        )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "subscription_id": self.external_subscription_id,
            "price_id": self.external_price_id,
            "status": self.status,
            "current_period_start": isoformat(self.current_period_start),
            "current_period_end": isoformat(self.current_period_end),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "last_event_at": isoformat(self.last_event_at),
        }

    def __repr__(self):
        return f"<Subscription {self.provider}:{self.external_subscription_id} {self.status}>"
