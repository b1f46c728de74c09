"""
Stock ledger tables.

Models:
- StockEntry (quantity of one part at one location, materialized from the log)
- Transaction (append-only in/out/set records; the system of record)
"""
