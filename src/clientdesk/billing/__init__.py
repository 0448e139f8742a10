"""Maintenance plans, hour accounting and Stripe billing."""
