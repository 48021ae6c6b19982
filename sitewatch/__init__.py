"""SiteWatch — HTTP endpoint health monitor with hysteresis and retention."""

__version__ = "0.1.0"
