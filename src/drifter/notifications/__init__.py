"""
Notification Backends Package.

Each module implements the same event set (temporary error, extra or missing
remote workspace, plan drift) for one destination. MultiNotification fans a
single event out to all of them.
"""

from .base import MultiNotification, Notification
from .formatter import FixCommandSlackFormatter, SlackMessageFormatter
from .log import LogNotification
from .slack import SlackWebhookNotification
from .workflow import WorkflowNotification

__all__ = [
    "FixCommandSlackFormatter",
    "LogNotification",
    "MultiNotification",
    "Notification",
    "SlackMessageFormatter",
    "SlackWebhookNotification",
    "WorkflowNotification",
]
