"""
PromoLens backend.

Promo code performance analytics for e-commerce storefronts:
ROI, Promotional Value Index (PVI), redemption leakage and
anomaly detection over daily metrics snapshots.
"""

__version__ = "1.0.0"
