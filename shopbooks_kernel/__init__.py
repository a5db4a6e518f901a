"""
Shopbooks Kernel

Shared foundation for the shop's bookkeeping engine:
- Structured JSON logging with request-scoped context
- Typed exceptions with machine-readable codes
- Decimal money helpers and the finance record types
- Injectable clock
- SQLAlchemy persistence of the finance state blob
"""

__version__ = "0.1.0"
