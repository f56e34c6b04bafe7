import logging

from celery import Celery, Task
from celery.signals import setup_logging as celery_setup_logging

from billing_sync.logging_config import configure_logging_for_non_flask


@celery_setup_logging.connect
def configure_worker_logging(loglevel=None, **kwargs):
    """Workers log JSON through the same dictConfig as the web app."""
    if isinstance(loglevel, int):
        loglevel = logging.getLevelName(loglevel)
    configure_logging_for_non_flask(loglevel or "INFO")


def celery_init_app(app):
    """
    Bind a Celery app to the Flask app so every task runs inside an app
    context.
    """

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery = Celery(
        app.name,
        task_cls=FlaskTask,
        include=["billing_sync.workers.webhook_tasks"],
    )
    celery.config_from_object(app.config["CELERY"])
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        worker_prefetch_multiplier=1,
        task_acks_late=True,
    )
    celery.set_default()
    app.extensions["celery"] = celery
    return celery
