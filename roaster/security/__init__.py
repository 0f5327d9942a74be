"""Audit trail for roast workflows and admin actions."""
