"""
Storefront payment reconciliation backend.

Creates payments through external processors, tracks orders through their
lifecycle and reconciles order state from webhooks and live processor reads.
"""

__version__ = "0.1.0"
