"""Storefront backend: carts, PayPal and M-Pesa checkout, payment reconciliation."""
