"""
order_core - offline-first cache and login core of the order-entry app.
"""

__version__ = "0.1.0"
