from __future__ import annotations

from prometheus_client import Counter, Gauge, Summary

recompute_runs_total = Counter(
    "spotswitch_recompute_runs_total",
    "Number of recompute cycles by outcome",
    labelnames=("status",),
)

# Provider metrics
price_provider_requests_total = Counter(
    "spotswitch_price_provider_requests_total",
    "Price provider request count by provider and result",
    labelnames=("provider", "result"),
)
price_provider_request_seconds = Summary(
    "spotswitch_price_provider_request_seconds",
    "Duration of price provider requests in seconds",
    labelnames=("provider",),
)

# Action metrics
actions_armed_total = Counter(
    "spotswitch_actions_armed_total", "Deferred actions armed", labelnames=("kind",)
)
actions_fired_total = Counter(
    "spotswitch_actions_fired_total",
    "Deferred actions fired by kind and result",
    labelnames=("kind", "result"),
)
actions_cancelled_total = Counter(
    "spotswitch_actions_cancelled_total", "Stale deferred actions cancelled before firing"
)
pending_actions = Gauge("spotswitch_pending_actions", "Deferred actions waiting to fire")
relay_set_seconds = Summary("spotswitch_relay_set_seconds", "Duration of relay calls in seconds")

# Scheduler metrics
reconcile_total = Counter(
    "spotswitch_reconcile_total",
    "Schedule reconciliation results",
    labelnames=("result",),
)
scheduler_misfires_total = Counter(
    "spotswitch_scheduler_misfires_total", "Number of local scheduler job misfires"
)

# Notification metrics
notifications_sent_total = Counter(
    "spotswitch_notifications_sent_total",
    "External notifications by result",
    labelnames=("result",),
)
