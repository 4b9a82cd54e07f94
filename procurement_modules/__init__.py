"""
Procurement Modules.

Orchestration over the procurement kernel and engines. Each module holds:
- Configuration (settings, YAML loading)
- Workflows (state machines)
- ORM models and a store adapter
- A service facade

Modules:
- Receiving: goods receipt notes, shortfall handling, return notes

Actual calculation logic lives in ``procurement_engines``.
"""

from procurement_modules import receiving

__all__ = ["receiving"]
