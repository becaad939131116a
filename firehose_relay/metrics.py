from __future__ import annotations

from prometheus_client import Counter, Gauge


frames_total = Counter(
    "firehose_relay_frames_total",
    "Upstream frames received, by header classification",
    ["kind"],
)

frame_decode_errors_total = Counter(
    "firehose_relay_frame_decode_errors_total",
    "Upstream frames with invalid framing (connection-fatal)",
)

commits_rejected_total = Counter(
    "firehose_relay_commits_rejected_total",
    "Commit events rejected before archive extraction",
    ["reason"],
)

frames_skipped_total = Counter(
    "firehose_relay_frames_skipped_total",
    "Frames dropped by a payload-level decode failure",
    ["reason"],
)

posts_forwarded_total = Counter(
    "firehose_relay_posts_forwarded_total",
    "Posts queued for delivery to subscribers",
)

posts_dropped_total = Counter(
    "firehose_relay_posts_dropped_total",
    "Posts produced but not delivered",
    ["reason"],
)

active_sessions = Gauge(
    "firehose_relay_active_sessions",
    "Currently open relay sessions",
)
