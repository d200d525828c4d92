"""ReportForge - metric aggregation over in-memory Stripe-like data."""

from reportforge.store import ReportEngine

__all__ = ["ReportEngine"]
__version__ = "0.1.0"
