"""
NCF Manager connector for Shopify.

Keeps a shop's subscription state consistent between Shopify Billing,
NCF Manager (the plan authority) and the local shop record.
"""

__version__ = "1.0.0"
