"""Prometheus metrics shared by the chat pipeline."""

from prometheus_client import Counter

CHAT_REPLIES = Counter(
    "chat_replies_total",
    "Replies returned to visitors, by channel and reply source.",
    ["channel", "source"],
)
