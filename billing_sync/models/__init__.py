from .payment_record import PaymentRecord
from .profile import Profile
from .subscription import Subscription
from .webhook_event import WebhookEvent

__all__ = ["PaymentRecord", "Profile", "Subscription", "WebhookEvent"]
