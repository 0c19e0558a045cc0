"""Feed Inbox: RSS/Atom subscription and local aggregation engine."""

__version__ = "0.1.0"
