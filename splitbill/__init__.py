"""
Split Bill - Source Package

Allocation and settlement engine for bills shared by a group of people.

DESIGN PRINCIPLES:
1. Participants + items → share matrix → amounts → totals → status
2. Fail early, fail visibly
3. No silent corrections of money
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Bill Team"
