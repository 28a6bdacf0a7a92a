"""
Tress: feed synchronization and Web Push notification service.
"""

__version__ = "0.1.0"
