"""
HERA Kernel - Universal Data Engine

A schema-less business-data engine over six relations with:
- Smart-code validation on every row
- Strict multi-tenant isolation
- Idempotent entity upserts and transaction emits
- Balanced ledger enforcement per currency
- Actor/audit stamping on every write
"""

__version__ = "0.1.0"
