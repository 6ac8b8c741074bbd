"""
LedgerSync - Source Package

The data-reconciliation core of a personal-finance app: pulls accounts,
purchases and deposits from a sandbox banking API, merges them with manual
entries into one ledger, and derives month-scoped views from it.

DESIGN PRINCIPLES:
1. One authoritative Ledger, mutated through a small set of operations
2. Partial API failures degrade the data, never crash the session
3. User category choices survive every refresh
4. Every data-quality event is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "LedgerSync Team"
