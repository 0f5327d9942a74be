"""Delivery and admin-lookup collaborators for the chat platform.

This package provides:
- Delivery: hand a finished voice note to the chat platform
- Admin lookup: resolve whether a user administers a group
"""
