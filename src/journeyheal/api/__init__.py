"""
API module for journeyheal.

This module contains:
- healing_endpoints.py: Mapping, classification, healing log and LLKB endpoints
"""

__all__ = ["healing_endpoints"]
