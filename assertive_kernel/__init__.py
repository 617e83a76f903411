"""
Assertive Kernel

Assertion-based transaction classification for accounting practice:
- Rule-library matching with weighted nearest-match feedback
- Template-driven practice problems (forward, reverse, construct)
- A per-learner business simulation with an append-only ledger
- Balance sheet and income statement derivation from the ledger
"""

__version__ = "0.1.0"
