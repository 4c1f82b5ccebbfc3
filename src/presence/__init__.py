"""
Presence Module
===============

Bounded Context for representative presence and attendance.

Responsibilities:
- Record location pings (latest ping per representative)
- Derive online/offline from ping recency, never from a stored flag
- Track the explicitly-set attendance dimension (checked in / break / out)
"""

__version__ = "1.0.0"
