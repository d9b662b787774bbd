"""
Budget Kernel

Shared core of the production budget ledger:
- Declarative persistence with tenant-scoped rows
- Typed errors with machine-readable codes
- Structured JSON logging
- Injectable clock
- Pure approval-step resolution shared by every document engine
"""

__version__ = "0.1.0"
