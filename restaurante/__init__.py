"""
                Restaurante Ordering API

REST backend for a restaurant: SMS-verified registration, catalog,
cart checkout with payment receipts, dish ratings and an admin console.
"""

__version__ = "1.0.0"
