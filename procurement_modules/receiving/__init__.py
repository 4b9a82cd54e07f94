"""
Receiving Module (``procurement_modules.receiving``).

Responsibility
--------------
Goods receipt against purchase orders and change orders: prices receipt
notes, detects under-delivery, reconciles it against existing return notes,
and raises return notes for what is still outstanding.

Architecture position
---------------------
**Modules layer** -- configuration, payload ingestion, document numbering,
the save workflow, ORM models with a store adapter, and the
``ReceivingService`` facade. All calculation is delegated to
``procurement_engines``.

Failure modes
-------------
* ``SaveOutcome.is_success == False`` -- validation or persistence failure;
  ``failed_stage`` says which write did not happen.
* ``ConfigurationError`` -- unknown or malformed configuration keys.
"""

from procurement_modules.receiving.cache import ResourceScope, ScopedResourceCache
from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.receiving.ingestion import (
    ordering_document_from_payload,
    receipt_note_from_payload,
    return_note_from_payload,
)
from procurement_modules.receiving.numbering import NumberFormat, assign_number
from procurement_modules.receiving.ports import ReceivingStore
from procurement_modules.receiving.service import (
    FormResources,
    ReceivingService,
    SaveOutcome,
    SaveStage,
    ShortfallChoice,
    ShortfallDecision,
)
from procurement_modules.receiving.workflows import (
    RECEIPT_SAVE_WORKFLOW,
    SaveRun,
    SaveState,
)

__all__ = [
    "ReceivingConfig",
    "ReceivingService",
    "ReceivingStore",
    "SaveOutcome",
    "SaveStage",
    "SaveState",
    "SaveRun",
    "RECEIPT_SAVE_WORKFLOW",
    "ShortfallChoice",
    "ShortfallDecision",
    "FormResources",
    "ResourceScope",
    "ScopedResourceCache",
    "NumberFormat",
    "assign_number",
    "ordering_document_from_payload",
    "receipt_note_from_payload",
    "return_note_from_payload",
]
