from datetime import datetime, timezone


def utcnow():
    """Naive UTC now. Columns are stored naive so SQLite round-trips compare cleanly."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_unix(value):
    """Provider unix seconds -> naive UTC datetime; None passes through."""
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def parse_iso(value):
    """
    Parse an ISO-8601 timestamp as sent by Zoho (``2024-05-01T10:00:00+0530``
    or a plain date) into naive UTC.
    """
    if value in (None, ""):
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat on older interpreters wants +05:30, not +0530
    if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit() and ":" not in text[-5:]:
        text = f"{text[:-2]}:{text[-2:]}"
    return to_naive_utc(datetime.fromisoformat(text))


def isoformat(value):
    return value.isoformat() if value else None
