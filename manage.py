"""Management entry point: `python manage.py init-db`, `python manage.py reprocess-webhooks`."""

from dotenv import load_dotenv
from flask.cli import FlaskGroup

load_dotenv()

from billing_sync import create_app  # noqa: E402

cli = FlaskGroup(create_app=lambda: create_app())


if __name__ == "__main__":
    cli()
