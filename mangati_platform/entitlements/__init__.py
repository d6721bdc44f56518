"""Subscription entitlements and upload quota tracking."""
