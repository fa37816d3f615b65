"""
Textile Kernel

Inventory ledger for discrete fabric units (thans grouped into packages)
driven by conversational commands, with:
- Risk-gated writes deferred to an admin approval queue
- Exactly-once replay of approved actions
- Double-entry ledger pairs for sales, returns and payments
- Append-only stock movement log with a materialized running balance
- Optimistic row versioning plus per-than keyed locking
"""

__version__ = "0.1.0"
