"""
Receiving Module Service (``procurement_modules.receiving.service``).

Responsibility
--------------
Orchestrates receiving: prices a receipt note, checks it for shortfalls
against the fulfillment ledger, saves it, and (when the caller asks for
it) raises a return note for what is still short. Pure computation is
delegated to ``procurement_engines``; storage to a ``ReceivingStore``.

Architecture position
---------------------
**Modules layer**. ``ReceivingService`` is the public entry point for
receiving operations.

Invariants enforced
-------------------
* The receipt note and the return note are two independent writes. A
  failed return note never rolls back the saved receipt note; the outcome
  reports ``receipt_saved=True, return_note_saved=False``.
* The combined save never raises for validation or persistence failures.
  It returns a ``SaveOutcome`` naming the failed stage. A failing or
  malformed ``on_shortfall`` answer is reported the same way, as a
  return-note stage failure after the receipt note was saved.
* Standalone return notes are checked against what is still outstanding
  before they are written.
* Fulfillment is recomputed from freshly loaded notes on every save.
* Ordering document status updates are best effort: a failure becomes an
  outcome warning.

Usage::

    service = ReceivingService(SqlAlchemyReceivingStore(session, actor_id))
    outcome = service.save_receipt_note_with_reconciliation(
        receipt_note, document,
        on_shortfall=lambda items: ShortfallChoice.RAISE_RETURN_NOTE,
    )
    if not outcome.is_success:
        show_error(outcome.failed_stage, outcome.error)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_engines.breakdown import FinancialBreakdown, compute_breakdown
from procurement_engines.fulfillment import FulfillmentLedger, same_document
from procurement_engines.item_identity import ReconciliationInconsistency, resolve_item_key
from procurement_engines.receipt_pricing import PricedReceiptNote, price_receipt_note
from procurement_engines.reconciliation import (
    ReconciledShortfall,
    build_return_note_draft,
    reconcile_remaining_shortfall,
    tally_returned,
    validate_return_quantities,
)
from procurement_engines.shortfall import ShortfallDetection, ShortfallItem, detect_shortfalls
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.documents import (
    OrderingDocument,
    OrderingDocumentRef,
    OrderingStatus,
    ReceiptNote,
    ReturnNote,
    ReturnNoteItem,
)
from procurement_kernel.domain.values import ZERO, Money, clamp_non_negative, round_money
from procurement_kernel.exceptions import (
    DocumentMismatchError,
    InvalidQuantityError,
    PersistenceError,
    ProcurementError,
    ShortfallDecisionError,
    UnknownDocumentError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_modules.receiving.cache import ResourceScope, ScopedResourceCache
from procurement_modules.receiving.config import ReceivingConfig
from procurement_modules.receiving.numbering import (
    assign_number,
    receipt_number_format,
    return_number_format,
)
from procurement_modules.receiving.ports import ReceivingStore
from procurement_modules.receiving.workflows import SaveRun, SaveState

logger = get_logger("modules.receiving.service")


class SaveStage(str, Enum):
    """The independently committed writes of a receipt save."""

    RECEIPT = "receipt"
    RETURN_NOTE = "return-note"


class ShortfallChoice(str, Enum):
    SAVE_AS_OPEN = "save_as_open"
    RAISE_RETURN_NOTE = "raise_return_note"


@dataclass(frozen=True)
class ShortfallDecision:
    """
    The caller's answer to a shortfall.

    ``return_quantities`` overrides the quantity to return per item key;
    items not listed return their full remaining shortfall.
    """

    choice: ShortfallChoice
    return_quantities: Mapping[str, Decimal] = field(default_factory=dict)


ShortfallCallback = Callable[[tuple[ShortfallItem, ...]], "ShortfallChoice | ShortfallDecision"]


@dataclass(frozen=True)
class SaveOutcome:
    """Structured result of ``save_receipt_note_with_reconciliation``."""

    receipt_saved: bool
    return_note_saved: bool
    final_state: SaveState
    error: ProcurementError | None = None
    failed_stage: SaveStage | None = None
    receipt_note: ReceiptNote | None = None
    return_note: ReturnNote | None = None
    shortfall: tuple[ShortfallItem, ...] = ()
    choice: ShortfallChoice | None = None
    inconsistencies: tuple[ReconciliationInconsistency, ...] = ()
    warnings: tuple[str, ...] = ()
    trail: tuple[SaveState, ...] = ()
    message: str = ""
    finished_at: datetime | None = None

    @property
    def is_success(self) -> bool:
        return self.final_state is SaveState.DONE


@dataclass(frozen=True)
class FormResources:
    """Sibling resources loaded for a form, with any per-resource failures."""

    values: Mapping[str, Any]
    errors: Mapping[str, Exception]

    @property
    def is_complete(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        for error in self.errors.values():
            raise error


def _coerce_decision(answer: Any) -> ShortfallDecision:
    decision = answer if isinstance(answer, ShortfallDecision) else ShortfallDecision(choice=answer)
    try:
        choice = ShortfallChoice(decision.choice)
    except (TypeError, ValueError) as e:
        raise ShortfallDecisionError(f"{decision.choice!r} is not a shortfall choice") from e
    return replace(decision, choice=choice)


def _ask_for_decision(
    on_shortfall: ShortfallCallback, items: tuple[ShortfallItem, ...]
) -> ShortfallDecision:
    """Call ``on_shortfall``; anything it raises becomes a ProcurementError."""
    try:
        answer = on_shortfall(items)
    except ProcurementError:
        raise
    except Exception as e:
        raise ShortfallDecisionError(f"on_shortfall raised {type(e).__name__}: {e}") from e
    return _coerce_decision(answer)


class ReceivingService:
    """
    Orchestrates receipt notes, shortfalls and return notes.

    Args:
        store: Persistence port.
        config: Numbering and status-update settings.
        cache: Cache for sibling form resources.
        clock: Stamps ``SaveOutcome.finished_at``.
    """

    def __init__(
        self,
        store: ReceivingStore,
        config: ReceivingConfig | None = None,
        cache: ScopedResourceCache | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._config = config or ReceivingConfig()
        self._clock = clock or SystemClock()
        self._cache = cache or ScopedResourceCache(
            ttl_seconds=self._config.resource_cache_ttl_seconds, clock=self._clock
        )

    @property
    def cache(self) -> ScopedResourceCache:
        return self._cache

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def compute_breakdown(self, document: OrderingDocument) -> FinancialBreakdown:
        """Breakdown of an ordering document's own item total."""
        return compute_breakdown(item_total=Money(document.item_total), config=document.config)

    def price_receipt_note(self, receipt_note: ReceiptNote, document: OrderingDocument) -> PricedReceiptNote:
        return price_receipt_note(
            receipt_note, document, absorb_rounding=self._config.absorb_allocation_rounding
        )

    def build_ledger(self, document: OrderingDocument) -> FulfillmentLedger:
        """Ledger over the document's currently active receipt notes."""
        notes = self._store.list_active_receipt_notes(document.ref)
        return FulfillmentLedger(document.ref, notes, document.lines)

    def detect_shortfalls(self, receipt_note: ReceiptNote, document: OrderingDocument) -> ShortfallDetection:
        return detect_shortfalls(receipt_note, self.build_ledger(document))

    def reconcile_remaining_shortfall(
        self, shortfall_items: Sequence[ShortfallItem], ref: OrderingDocumentRef
    ) -> ReconciledShortfall:
        """Shortfall left after the document's existing active return notes."""
        return reconcile_remaining_shortfall(
            shortfall_items, self._store.list_active_return_note_items(ref)
        )

    # ------------------------------------------------------------------
    # Receipt save
    # ------------------------------------------------------------------

    def save_receipt_note_with_reconciliation(
        self,
        receipt_note: ReceiptNote,
        document: OrderingDocument,
        on_shortfall: ShortfallCallback,
    ) -> SaveOutcome:
        """
        Save ``receipt_note`` and handle any shortfall it leaves.

        ``on_shortfall`` is called only when items remain short after
        existing return notes. It receives those items and returns a
        ShortfallChoice or a ShortfallDecision. If it raises, or answers
        with anything else, the outcome fails at the return-note stage with
        ``ShortfallDecisionError``; the receipt note stays saved.
        """
        run = SaveRun()
        warnings: list[str] = []
        with LogContext.bind(
            document_id=str(document.ref),
            corporation_id=receipt_note.corporation_id,
            receipt_note_id=receipt_note.id,
        ):
            logger.info("receipt_save_started", extra={
                "document": str(document.ref),
                "item_count": len(receipt_note.items),
                "is_new": receipt_note.id is None,
            })
            run.fire("save")

            # Stage 1: price, detect, number and persist the receipt note.
            try:
                priced = self.price_receipt_note(receipt_note, document).receipt_note
                other_notes = self._store.list_active_receipt_notes(document.ref)
                detection = detect_shortfalls(
                    priced, FulfillmentLedger(document.ref, other_notes, document.lines)
                )
                grn_number = assign_number(
                    receipt_number_format(self._config),
                    priced.grn_number,
                    self._store.list_receipt_numbers(priced.corporation_id, exclude_id=priced.id),
                )
                to_save = replace(priced, grn_number=grn_number)
                if to_save.id is None:
                    saved = self._store.create_receipt_note(to_save)
                else:
                    saved = self._store.update_receipt_note(to_save)
            except (ValidationError, PersistenceError) as e:
                return self._failed(run, SaveStage.RECEIPT, e, receipt_saved=False, warnings=warnings)

            issues = list(detection.inconsistencies)

            if not detection.has_shortfall:
                run.fire("receipt_saved")
                self._complete_if_fulfilled(document, saved, other_notes, None, warnings)
                return self._done(
                    run, saved, warnings=warnings, inconsistencies=issues,
                    message=f"Receipt note {saved.grn_number} saved",
                )

            # Stage 2: reduce the shortfall by existing return notes.
            try:
                existing_returns = list(self._store.list_active_return_note_items(document.ref))
            except PersistenceError as e:
                return self._failed(
                    run, SaveStage.RETURN_NOTE, e, receipt_saved=True, receipt_note=saved,
                    shortfall=detection.items, warnings=warnings,
                )
            reconciled = reconcile_remaining_shortfall(detection.items, existing_returns)
            issues.extend(reconciled.inconsistencies)

            if reconciled.is_empty:
                run.fire("receipt_saved")
                self._complete_if_fulfilled(document, saved, other_notes, existing_returns, warnings)
                return self._done(
                    run, saved, warnings=warnings, inconsistencies=issues,
                    message=f"Receipt note {saved.grn_number} saved",
                )

            run.fire("receipt_saved_with_shortfall")
            try:
                decision = _ask_for_decision(on_shortfall, reconciled.items)
            except ProcurementError as e:
                return self._failed(
                    run, SaveStage.RETURN_NOTE, e, receipt_saved=True, receipt_note=saved,
                    shortfall=reconciled.items, warnings=warnings,
                )
            logger.info("shortfall_decision_received", extra={
                "choice": decision.choice.value,
                "shortfall_count": len(reconciled.items),
            })

            if decision.choice is ShortfallChoice.SAVE_AS_OPEN:
                run.fire("save_as_open")
                self._set_status(document.ref, OrderingStatus.PARTIALLY_RECEIVED, warnings)
                return self._done(
                    run, saved, shortfall=reconciled.items, choice=decision.choice,
                    warnings=warnings, inconsistencies=issues,
                    message=f"Receipt note {saved.grn_number} saved as open",
                )

            # Stage 3: raise the return note.
            run.fire("raise_return_note")
            try:
                draft = build_return_note_draft(
                    document.ref,
                    reconciled.items,
                    receipt_note_id=saved.id,
                    return_quantities=decision.return_quantities,
                    corporation_id=saved.corporation_id,
                    project_id=saved.project_id,
                )
                return_number = assign_number(
                    return_number_format(self._config),
                    None,
                    self._store.list_return_numbers(saved.corporation_id),
                )
                created = self._store.create_return_note(replace(draft, return_number=return_number))
            except (ValidationError, PersistenceError) as e:
                return self._failed(
                    run, SaveStage.RETURN_NOTE, e, receipt_saved=True, receipt_note=saved,
                    shortfall=reconciled.items, choice=decision.choice, warnings=warnings,
                )

            run.fire("return_note_saved")
            self._complete_if_fulfilled(
                document, saved, other_notes, [*existing_returns, *created.items], warnings
            )
            return self._done(
                run, saved, return_note=created, shortfall=reconciled.items,
                choice=decision.choice, warnings=warnings, inconsistencies=issues,
                message=(
                    f"Receipt note {saved.grn_number} and return note "
                    f"{created.return_number} saved"
                ),
            )

    def _done(self, run: SaveRun, saved: ReceiptNote, **kwargs: Any) -> SaveOutcome:
        return_note = kwargs.pop("return_note", None)
        warnings = tuple(kwargs.pop("warnings", ()))
        inconsistencies = tuple(kwargs.pop("inconsistencies", ()))
        outcome = SaveOutcome(
            receipt_saved=True,
            return_note_saved=return_note is not None,
            final_state=run.state,
            receipt_note=saved,
            return_note=return_note,
            warnings=warnings,
            inconsistencies=inconsistencies,
            trail=run.trail,
            finished_at=self._clock.now(),
            **kwargs,
        )
        logger.info("receipt_save_completed", extra={
            "receipt_note_id": str(saved.id),
            "grn_number": saved.grn_number,
            "return_note_id": str(return_note.id) if return_note else None,
            "choice": outcome.choice.value if outcome.choice else None,
            "warning_count": len(warnings),
        })
        return outcome

    def _failed(
        self,
        run: SaveRun,
        stage: SaveStage,
        error: ProcurementError,
        receipt_saved: bool,
        **kwargs: Any,
    ) -> SaveOutcome:
        if isinstance(error, PersistenceError):
            error = error.with_stage(stage.value)
        run.fire("fail")
        logger.error("receipt_save_failed", extra={
            "stage": stage.value,
            "error_code": error.code,
            "error": str(error),
            "receipt_saved": receipt_saved,
        })
        return SaveOutcome(
            receipt_saved=receipt_saved,
            return_note_saved=False,
            final_state=run.state,
            error=error,
            failed_stage=stage,
            trail=run.trail,
            finished_at=self._clock.now(),
            message=str(error),
            warnings=tuple(kwargs.pop("warnings", ())),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Ordering document status
    # ------------------------------------------------------------------

    def _set_status(
        self, ref: OrderingDocumentRef, status: OrderingStatus, warnings: list[str]
    ) -> None:
        if not self._config.update_ordering_status:
            return
        try:
            self._store.update_ordering_document_status(ref, status)
        except PersistenceError as e:
            logger.warning("ordering_status_update_failed", extra={
                "document": str(ref),
                "status": status.value,
                "error": str(e),
            })
            warnings.append(f"Could not set {ref} to {status.value}: {e.detail}")

    def _complete_if_fulfilled(
        self,
        document: OrderingDocument,
        saved: ReceiptNote,
        other_notes: Iterable[ReceiptNote],
        return_items: Iterable[ReturnNoteItem] | None,
        warnings: list[str],
    ) -> None:
        """Mark the document completed when received plus returned covers every line."""
        if not self._config.update_ordering_status or not document.lines:
            return
        if return_items is None:
            try:
                return_items = self._store.list_active_return_note_items(document.ref)
            except PersistenceError as e:
                logger.warning("completion_check_skipped", extra={"error": str(e)})
                warnings.append(f"Could not check whether {document.ref} is complete: {e.detail}")
                return

        notes = [n for n in other_notes if n.id != saved.id] + [saved]
        leftovers, _ = FulfillmentLedger(document.ref, notes, document.lines).leftover_by_key()
        returned, _ = tally_returned(return_items)
        outstanding = {
            key: qty - returned.get(key, ZERO)
            for key, qty in leftovers.items()
            if qty - returned.get(key, ZERO) > ZERO
        }
        if not leftovers or outstanding:
            logger.debug("ordering_document_still_open", extra={
                "document": str(document.ref),
                "outstanding_items": len(outstanding),
            })
            return
        self._set_status(document.ref, OrderingStatus.COMPLETED, warnings)

    # ------------------------------------------------------------------
    # Return notes
    # ------------------------------------------------------------------

    def save_return_note(
        self, return_note: ReturnNote, document: OrderingDocument | None = None
    ) -> ReturnNote:
        """
        Create or update a return note outside the receipt flow.

        Items get ``return_total = round(quantity * unit_price)``. An update
        with no items deletes every stored item of the note. ``document`` is
        loaded from the store when not given.

        Raises:
            InvalidQuantityError: for a zero or negative return quantity.
            OverReturnError: for more than is still outstanding on the item.
            UnknownDocumentError: if the ordering document is not stored.
            DocumentMismatchError: if ``document`` is another document.
            PersistenceError: with stage "return-note".
        """
        items = tuple(
            replace(item, return_total=round_money(item.return_quantity * item.unit_price))
            if item.unit_price is not None
            else item
            for item in return_note.items
        )
        with LogContext.bind(return_note_id=return_note.id, document_id=str(return_note.ref)):
            try:
                if document is None:
                    document = self._store.get_ordering_document(return_note.ref)
                    if document is None:
                        raise UnknownDocumentError(str(return_note.ref))
                elif not same_document(return_note.ref, document.ref):
                    raise DocumentMismatchError(str(document.ref), str(return_note.ref))
                self._check_return_quantities(return_note, document)
                number = assign_number(
                    return_number_format(self._config),
                    return_note.return_number,
                    self._store.list_return_numbers(
                        return_note.corporation_id, exclude_id=return_note.id
                    ),
                )
                note = replace(return_note, items=items, return_number=number)
                if note.id is None:
                    return self._store.create_return_note(note)
                return self._store.update_return_note(note)
            except PersistenceError as e:
                raise e.with_stage(SaveStage.RETURN_NOTE.value) from e

    def _check_return_quantities(self, return_note: ReturnNote, document: OrderingDocument) -> None:
        """
        Allowance per item: ordered, less received on active receipt notes,
        less returned on the document's other active return notes.
        """
        requested: dict[str, Decimal] = {}
        for item in return_note.active_items:
            if item.return_quantity <= ZERO:
                raise InvalidQuantityError(
                    "return_quantity", item.return_quantity, reason="must be positive"
                )
            key = resolve_item_key(item)
            if key is not None:
                requested[key] = requested.get(key, ZERO) + item.return_quantity
        if not requested:
            return

        receipts = self._store.list_active_receipt_notes(document.ref)
        leftovers, _ = FulfillmentLedger(document.ref, receipts, document.lines).leftover_by_key()
        other_returns = [
            item for item in self._store.list_active_return_note_items(document.ref)
            if return_note.id is None or item.return_note_id != return_note.id
        ]
        returned, _ = tally_returned(other_returns)
        allowance = {
            key: clamp_non_negative(qty - returned.get(key, ZERO))
            for key, qty in leftovers.items()
        }
        validate_return_quantities(requested, allowance)

    # ------------------------------------------------------------------
    # Form resources
    # ------------------------------------------------------------------

    def load_form_resources(
        self,
        scope: ResourceScope,
        loaders: Mapping[str, Callable[[], Any]],
    ) -> FormResources:
        """
        Load independent sibling resources concurrently, through the cache.

        All loaders run to completion; failures are collected per resource
        instead of aborting the others.
        """
        values: dict[str, Any] = {}
        errors: dict[str, Exception] = {}
        if not loaders:
            return FormResources(values, errors)

        workers = min(self._config.resource_loader_workers, len(loaders))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                name: pool.submit(self._cache.get_or_load, scope, name, loader)
                for name, loader in loaders.items()
            }
            for name, future in futures.items():
                try:
                    values[name] = future.result()
                except Exception as e:
                    errors[name] = e

        if errors:
            logger.warning("form_resources_partially_loaded", extra={
                "scope": str(scope),
                "failed": sorted(errors),
            })
        logger.info("form_resources_loaded", extra={
            "scope": str(scope),
            "loaded": sorted(values),
        })
        return FormResources(values, errors)
