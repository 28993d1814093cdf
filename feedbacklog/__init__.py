"""feedbacklog: discover links, fetch their content, reconcile the backlog."""

__version__ = "0.1.0"
