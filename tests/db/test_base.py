"""
Tests for the declarative base: id storage, column types and actor tracking.
"""

from uuid import UUID, uuid4

import pytest
from sqlalchemy import Numeric, String, select

from procurement_kernel.db.base import UUIDString
from procurement_kernel.domain.documents import OrderingStatus
from procurement_modules.receiving.orm import OrderingDocumentModel, ReceiptNoteModel
from procurement_modules.receiving.repository import SqlAlchemyReceivingStore


class TestUUIDString:
    def test_binds_uuid_and_text(self):
        column_type = UUIDString()
        value = uuid4()

        assert column_type.process_bind_param(value, None) == str(value)
        assert column_type.process_bind_param(str(value).upper(), None) == str(value)
        assert column_type.process_bind_param(None, None) is None

    def test_malformed_id_rejected_at_bind(self):
        with pytest.raises(ValueError):
            UUIDString().process_bind_param("not-a-uuid", None)

    def test_loads_uuid(self):
        value = uuid4()

        assert UUIDString().process_result_value(str(value), None) == value


class TestColumnTypes:
    def test_money_columns_are_exact(self):
        column = ReceiptNoteModel.__table__.c.freight_amount

        assert isinstance(column.type, Numeric)
        assert column.type.scale == 9
        assert column.type.asdecimal

    def test_upstream_references_are_short_strings(self):
        column = ReceiptNoteModel.__table__.c.corporation_id

        assert isinstance(column.type, String)
        assert column.type.length == 100


class TestActorTracking:
    def test_new_row_has_creator_only(self, session, purchase_order, actor_id):
        session.add(OrderingDocumentModel.from_dto(purchase_order, actor_id))
        session.flush()

        model = session.execute(select(OrderingDocumentModel)).scalar_one()
        assert model.created_by_id == actor_id
        assert model.updated_by_id is None
        assert model.created_at is not None

    def test_changes_record_the_actor(self, session, purchase_order, actor_id):
        SqlAlchemyReceivingStore(session, actor_id).save_ordering_document(purchase_order)
        editor = UUID("00000000-0000-4000-a000-000000000002")

        SqlAlchemyReceivingStore(session, editor).update_ordering_document_status(
            purchase_order.ref, OrderingStatus.COMPLETED
        )

        model = session.execute(select(OrderingDocumentModel)).scalar_one()
        assert model.created_by_id == actor_id
        assert model.updated_by_id == editor
