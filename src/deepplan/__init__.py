"""Deep planning: a phased planning-session tracker with durable, resumable sessions."""

__version__ = "0.1.0"
