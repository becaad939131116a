"""Relay a simplified, filtered view of the atproto firehose to WebSocket subscribers."""
