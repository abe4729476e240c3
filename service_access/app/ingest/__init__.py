"""
Ingest package. Normalizes payment-provider webhooks into grant decisions.
"""
