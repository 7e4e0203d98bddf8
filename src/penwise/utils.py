from datetime import UTC, datetime, timedelta


def now() -> datetime:
    return datetime.now(UTC)


def add_minutes(moment: datetime, minutes: float) -> datetime:
    return moment + timedelta(minutes=minutes)


def hours_between(earlier: datetime | None, later: datetime) -> float:
    """Absolute distance in hours; a missing timestamp counts as the epoch."""
    if earlier is None:
        earlier = datetime.fromtimestamp(0, UTC)
    return abs((later - as_utc(earlier)).total_seconds()) / 3600


def as_utc(moment: datetime) -> datetime:
    """Attach UTC to a naive timestamp."""
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def start_of_year(moment: datetime) -> datetime:
    return moment.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
