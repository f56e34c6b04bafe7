from billing_sync.billing.state_machine import ProfileStatus, Provider
from billing_sync.extensions import db
from billing_sync.utils.timeutils import utcnow


class Profile(db.Model):
    """One row per end user; subscription_status is written only by the reconciler."""

    __tablename__ = "profiles"

    id = db.Column(db.String(64), primary_key=True)
    stripe_customer_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    zoho_customer_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    subscription_status = db.Column(
        db.String(20), nullable=False, default=ProfileStatus.NONE.value
    )
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    _CUSTOMER_COLUMNS = {
        Provider.STRIPE: "stripe_customer_id",
        Provider.ZOHO: "zoho_customer_id",
    }

    @classmethod
    def customer_column(cls, provider):
        return getattr(cls, cls._CUSTOMER_COLUMNS[Provider(provider)])

    @classmethod
    def find_by_customer(cls, provider, customer_id):
        if not customer_id:
            return None
        return cls.query.filter(cls.customer_column(provider) == customer_id).first()

    def customer_id_for(self, provider):
        return getattr(self, self._CUSTOMER_COLUMNS[Provider(provider)])

    def set_customer_id(self, provider, customer_id):
        column = self._CUSTOMER_COLUMNS[Provider(provider)]
        if customer_id and getattr(self, column) != customer_id:
            setattr(self, column, customer_id)

    def __repr__(self):
        return f"<Profile {self.id} status={self.subscription_status}>"
