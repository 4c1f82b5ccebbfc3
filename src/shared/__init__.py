"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Visit Monitoring and Presence).

Architecture Pattern: Modular Monolith
- Each module (monitoring, presence) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Monitoring or Presence to shared kernel.
"""

__version__ = "1.0.0"
