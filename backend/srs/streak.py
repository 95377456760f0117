"""Daily study streak bookkeeping."""

from dataclasses import replace
from datetime import date, timedelta

from backend.srs.state import ProgressAggregate


def update_streak(aggregate: ProgressAggregate, today: date) -> ProgressAggregate:
    """Count ``today`` as a study day.

    Same day: unchanged. Day after the last study day: streak + 1.
    Anything else (a gap, or never studied): streak restarts at 1.
    """
    last = aggregate.last_study_date
    if last == today:
        return aggregate
    if last == today - timedelta(days=1):
        return replace(aggregate, streak=aggregate.streak + 1, last_study_date=today)
    return replace(aggregate, streak=1, last_study_date=today)
