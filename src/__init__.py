"""
Finance Assistant - Source Package

A personal finance tracker with a conversational assistant that turns
free-form requests into record operations.

DESIGN PRINCIPLES:
1. AI proposes → Human confirms → System applies
2. Every applied batch can be undone
3. No silent changes to the record store
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Assistant Team"
