"""
Core module for journeyheal.

This module contains:
- config.py: Environment settings
- config_loader.py: Healing policy file loading and validation
- logging_config.py: Logging configuration
- models/: Data models
"""

__all__ = ["config", "config_loader", "logging_config", "models"]
