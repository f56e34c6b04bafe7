from .billing import billing_bp
from .health import health_bp
from .webhooks import webhooks_bp


def register_blueprints(app):
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    app.register_blueprint(billing_bp, url_prefix="/billing")
    app.register_blueprint(health_bp)
