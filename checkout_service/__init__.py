"""Storefront checkout and payment reconciliation service."""
