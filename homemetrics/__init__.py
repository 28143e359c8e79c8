"""
HomeMetrics Ingestion Pipeline

Extracts temperature/humidity sensor exports and pool chemistry reports
from raw email messages and turns them into typed time-series readings.
"""

__version__ = "0.1.0"
