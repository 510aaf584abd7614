"""
HEARTH - Household schedule sync and reminder engine
"""

__version__ = "0.1.0"
