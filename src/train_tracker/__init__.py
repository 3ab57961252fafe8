"""Train tracking API: network admin, live daily status and ETA predictions."""

__version__ = "0.1.0"
