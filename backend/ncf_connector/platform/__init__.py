"""Shopify platform glue: session authentication."""
