"""
External connector clients (Shopify Admin API, GA4 Measurement Protocol).
"""
