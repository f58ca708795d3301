"""dashmetrics - cached, time-bucketed dashboard metrics."""

__version__ = "0.1.0"
