"""Wall-clock helper.  Only ``updated_at`` stamps read the clock; simulation never does."""

from datetime import datetime, timezone


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
