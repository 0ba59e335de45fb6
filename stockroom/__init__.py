"""
                Stockroom

Ingredient inventory consistency engine for a restaurant point-of-sale:
order feasibility checks, transactional stock deduction/restoration,
low-stock alerts and product availability sync.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
