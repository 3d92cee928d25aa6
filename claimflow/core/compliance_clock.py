"""Regulatory deadline calculator (Ohio OAC 3901-1-54 timelines).

- 15 calendar days from claim creation: acknowledge receipt
- 21 calendar days from proof of loss: accept or deny
- 45 calendar days from proof of loss: written status update
- 60 calendar days from proof of loss: fraud report
- 10 business days from acceptance: tender payment

Pure functions; no clock is read unless ``is_deadline_met`` is called
without ``now``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pandas as pd
from pandas.tseries.offsets import BDay

from claimflow.models.claim import ComplianceDeadlines

ACK_DAYS = 15
ACCEPT_DENY_DAYS = 21
STATUS_UPDATE_DAYS = 45
FRAUD_REPORT_DAYS = 60
PAYMENT_BUSINESS_DAYS = 10


def add_calendar_days(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def add_business_days(start: datetime, days: int) -> datetime:
    """Advance *days* weekdays from *start*, skipping Saturday and Sunday.

    Time of day and tzinfo are kept.  A weekend start counts the following
    Monday as the first business day.
    """
    if days <= 0:
        return start
    return (pd.Timestamp(start) + BDay(days)).to_pydatetime()


def compute_deadlines(
    created_at: datetime, proof_of_loss_at: datetime | None = None
) -> ComplianceDeadlines:
    """Deadlines for a claim created at *created_at*.

    The proof-of-loss driven deadlines stay ``None`` until proof of loss
    has been received.
    """
    if proof_of_loss_at is None:
        return ComplianceDeadlines(ack_due_at=add_calendar_days(created_at, ACK_DAYS))

    return ComplianceDeadlines(
        ack_due_at=add_calendar_days(created_at, ACK_DAYS),
        accept_deny_due_at=add_calendar_days(proof_of_loss_at, ACCEPT_DENY_DAYS),
        next_status_update_due_at=add_calendar_days(proof_of_loss_at, STATUS_UPDATE_DAYS),
        fraud_report_due_at=add_calendar_days(proof_of_loss_at, FRAUD_REPORT_DAYS),
    )


def compute_payment_deadline(accepted_at: datetime) -> datetime:
    return add_business_days(accepted_at, PAYMENT_BUSINESS_DAYS)


def is_deadline_met(deadline: datetime, now: datetime | None = None) -> bool:
    """True while *now* has not passed *deadline*."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now <= deadline
