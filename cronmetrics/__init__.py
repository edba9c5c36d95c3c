"""
Cron Metrics Collector & Exporter
"""

__version__ = "0.3.0"
