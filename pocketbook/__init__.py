"""
Pocketbook - Source Package

A personal expense tracker: transactions tagged with category,
subcategory and project, recurring expenses that record themselves,
and foreign amounts converted to the home currency.

DESIGN PRINCIPLES:
1. Every stored amount is in the home currency
2. Recurring expenses never execute twice for the same due date
3. Conversion never blocks on the network
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocketbook Team"
