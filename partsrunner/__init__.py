"""
MyPartsRunner driver sync

Offline delivery sync queue and driver status tracking for the runner app.
"""

__version__ = "0.1.0"
