"""
Cash-Up Kernel - trip cash-up ledger and reconciliation engine.

Records daily tour cash-ups with:
- Rank-based guide fees computed from versioned rate tables
- Atomic trip writes (trip, roster, payments, discounts, audit)
- Payment exception / handover reconciliation gating invoices
- Append-only, hash-chained audit log
- Period aggregation with running totals for statements
"""

__version__ = "0.1.0"
