"""Storage: the single persisted document behind consent, policy and cooldowns.

This package provides:
- Document storage: one JSON document with serialized, atomic read-modify-write
- State operations: consent, group policy, cooldown and roast-log access
"""
