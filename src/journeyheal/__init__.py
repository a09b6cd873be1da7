"""
journeyheal: step mapping and self-healing for generated browser tests.

Turns Journey step text into IR primitives (hints, fixed patterns, learned
patterns) and repairs generated tests that fail for superficial reasons.
"""

__version__ = "0.1.0"
