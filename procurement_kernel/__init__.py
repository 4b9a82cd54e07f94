"""
Procurement Kernel

Shared foundation for the receiving and returns engine:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Fixed-precision monetary primitives
- Canonical ordering / receipt / return document records
- SQLAlchemy base classes and session management
"""

__version__ = "0.1.0"
