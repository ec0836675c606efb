"""Prometheus counters for account lifecycle events."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "account_registrations_total",
    "Accounts created by super-admins.",
)
VERIFICATIONS = Counter(
    "account_verifications_total",
    "Email verifications that activated an account.",
)
LOGIN_ATTEMPTS = Counter(
    "account_login_attempts_total",
    "Login attempts by outcome.",
    ["outcome"],
)
NOTIFICATION_FAILURES = Counter(
    "account_notification_failures_total",
    "Verification emails that could not be handed to the mail relay.",
)
