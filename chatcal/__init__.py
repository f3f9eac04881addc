"""Chat-driven calendar assistant: free text in, Google Calendar events out."""

__version__ = "0.1.0"
