"""ShopDesk usage and subscription metering."""

__version__ = "1.0.0"
