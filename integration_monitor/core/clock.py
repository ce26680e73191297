from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time; services accept a replacement for tests"""
    return datetime.now(timezone.utc)
