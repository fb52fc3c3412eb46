"""
ISP back-office aggregation services.

Dashboard metrics, chart series and the expired-customer overview cache for
the customer/payment/complaint records of an ISP administration system.
"""

__version__ = "0.4.0"


def get_version() -> str:
    """Get package version."""
    return __version__
