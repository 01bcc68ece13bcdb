"""
Tests for EntityService.

Covers:
- Create, update by id and upsert by (type, code)
- Hydrated dynamic fields and relationships on the returned EntityInfo
- Tenant isolation of entity_id
- Concurrent-create convergence on the unique code
- Soft and hard delete, with reference protection
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from hera_kernel.exceptions import (
    EntityNotFoundError,
    EntityReferencedError,
    InvalidPayloadError,
    InvalidSmartCodeError,
    TypeMismatchError,
)
from hera_kernel.models.dynamic_data import DynamicData
from hera_kernel.models.entity import Entity
from tests.conftest import ENTITY_SC, FIELD_SC, PRODUCT_SC, REL_SC


class TestCreate:
    def test_minimal(self, entity_service, ctx, deterministic_clock):
        info = entity_service.upsert(
            ctx,
            entity_type="customer",
            entity_name="Sarah Johnson",
            smart_code=ENTITY_SC,
        )
        assert info.is_new is True
        assert info.organization_id == ctx.organization_id
        assert info.entity_code is None
        assert info.status == "active"
        assert info.created_by == ctx.actor_user_id
        assert info.created_at == deterministic_clock.now()
        assert info.dynamic_fields == ()
        assert info.relationships == ()

    def test_with_fields_and_relationships(self, entity_service, make_entity, ctx):
        salon = make_entity("Park Regis", entity_type="branch")
        info = entity_service.upsert(
            ctx,
            entity_type="customer",
            entity_name="Sarah Johnson",
            smart_code=ENTITY_SC,
            entity_code="CUST-001",
            metadata={"source": "walk-in"},
            dynamic_fields={
                "email": {"field_type": "text", "value": "sarah@example.com", "smart_code": FIELD_SC},
                "loyalty_points": {"field_type": "number", "value": 120, "smart_code": FIELD_SC},
            },
            relationships=[
                {
                    "to_entity_id": str(salon.id),
                    "relationship_type": "member_of",
                    "smart_code": REL_SC,
                }
            ],
        )
        assert info.metadata == {"source": "walk-in"}
        assert info.field_value("email") == "sarah@example.com"
        assert info.field_value("loyalty_points") == Decimal("120")
        assert [f.field_name for f in info.dynamic_fields] == ["email", "loyalty_points"]
        (edge,) = info.relationships
        assert edge.from_entity_id == info.id
        assert edge.to_entity_id == salon.id

    def test_include_flags(self, entity_service, ctx):
        info = entity_service.upsert(
            ctx,
            entity_type="customer",
            entity_name="Sarah",
            smart_code=ENTITY_SC,
            dynamic_fields={"vip": {"field_type": "boolean", "value": True, "smart_code": FIELD_SC}},
            include_dynamic=False,
        )
        assert info.dynamic_fields == ()

    @pytest.mark.parametrize("missing", ["entity_type", "entity_name"])
    def test_required_fields(self, entity_service, ctx, missing):
        payload = {"entity_type": "customer", "entity_name": "Sarah", "smart_code": ENTITY_SC}
        payload[missing] = None
        with pytest.raises(InvalidPayloadError) as exc_info:
            entity_service.upsert(ctx, **payload)
        assert exc_info.value.field == missing

    def test_smart_code_required(self, entity_service, ctx):
        with pytest.raises(InvalidSmartCodeError):
            entity_service.upsert(ctx, entity_type="customer", entity_name="Sarah")

    def test_invalid_smart_code(self, entity_service, ctx):
        with pytest.raises(InvalidSmartCodeError):
            entity_service.upsert(
                ctx, entity_type="customer", entity_name="Sarah", smart_code="HERA.SALON.v1"
            )

    def test_unknown_status(self, entity_service, ctx):
        with pytest.raises(InvalidPayloadError):
            entity_service.upsert(
                ctx,
                entity_type="customer",
                entity_name="Sarah",
                smart_code=ENTITY_SC,
                status="deleted",
            )

    def test_relationships_must_be_list(self, entity_service, ctx):
        with pytest.raises(InvalidPayloadError):
            entity_service.upsert(
                ctx,
                entity_type="customer",
                entity_name="Sarah",
                smart_code=ENTITY_SC,
                relationships={"to_entity_id": "x"},
            )

    def test_bad_dynamic_value_raises(self, entity_service, ctx):
        with pytest.raises(TypeMismatchError):
            entity_service.upsert(
                ctx,
                entity_type="customer",
                entity_name="Sarah",
                smart_code=ENTITY_SC,
                dynamic_fields={
                    "loyalty_points": {"field_type": "number", "value": "lots", "smart_code": FIELD_SC}
                },
            )

    def test_logs_creation(self, entity_service, ctx, captured_logs):
        info = entity_service.upsert(
            ctx, entity_type="customer", entity_name="Sarah", smart_code=ENTITY_SC
        )
        records = [r for r in captured_logs() if r["message"] == "entity_created"]
        assert records[0]["entity_id"] == str(info.id)
        assert records[0]["smart_code"] == ENTITY_SC


class TestUpdate:
    def test_by_id_keeps_omitted_fields(self, entity_service, make_entity, ctx, deterministic_clock):
        created = make_entity("Sarah", entity_code="CUST-001", metadata={"a": 1})
        deterministic_clock.advance(30)
        updated = entity_service.upsert(ctx, entity_id=created.id, entity_name="Sarah J.")

        assert updated.id == created.id
        assert updated.is_new is False
        assert updated.entity_name == "Sarah J."
        assert updated.entity_type == "customer"
        assert updated.entity_code == "CUST-001"
        assert updated.metadata == {"a": 1}
        assert updated.smart_code == ENTITY_SC
        assert updated.updated_at > updated.created_at

    def test_by_code_is_idempotent(self, entity_service, ctx, session):
        payload = dict(
            entity_type="product",
            entity_name="Argan Shampoo",
            smart_code=PRODUCT_SC,
            entity_code="SKU-1",
        )
        first = entity_service.upsert(ctx, **payload)
        second = entity_service.upsert(ctx, **payload)
        assert first.is_new is True
        assert second.is_new is False
        assert second.id == first.id
        count = session.execute(
            select(Entity).where(Entity.organization_id == ctx.organization_id)
        ).scalars().all()
        assert len(count) == 1

    def test_same_code_different_type_is_distinct(self, make_entity):
        customer = make_entity("A", entity_type="customer", entity_code="X-1")
        product = make_entity("B", entity_type="product", entity_code="X-1", smart_code=PRODUCT_SC)
        assert customer.id != product.id

    def test_same_code_other_org_is_distinct(self, make_entity, other_ctx):
        mine = make_entity("A", entity_code="CUST-001")
        theirs = make_entity("A", entity_code="CUST-001", context=other_ctx)
        assert mine.id != theirs.id

    def test_code_clash_on_update(self, entity_service, make_entity, ctx):
        make_entity("A", entity_code="CUST-001")
        other = make_entity("B", entity_code="CUST-002")
        with pytest.raises(InvalidPayloadError) as exc_info:
            entity_service.upsert(ctx, entity_id=other.id, entity_code="CUST-001")
        assert exc_info.value.field == "entity_code"

    def test_type_change_onto_taken_code(self, entity_service, make_entity, ctx, session):
        customer = make_entity("Acme", entity_type="customer", entity_code="C1")
        vendor = make_entity("Acme Supplies", entity_type="vendor", entity_code="C1")
        with pytest.raises(InvalidPayloadError) as exc_info:
            entity_service.upsert(ctx, entity_id=vendor.id, entity_type="customer")
        assert exc_info.value.field == "entity_type"

        session.expire_all()
        assert session.get(Entity, vendor.id).entity_type == "vendor"
        assert session.get(Entity, customer.id).entity_type == "customer"

    def test_type_and_code_change_together(self, entity_service, make_entity, ctx):
        make_entity("Acme", entity_type="customer", entity_code="C2")
        vendor = make_entity("Acme Supplies", entity_type="vendor", entity_code="V1")
        with pytest.raises(InvalidPayloadError) as exc_info:
            entity_service.upsert(
                ctx, entity_id=vendor.id, entity_type="customer", entity_code="C2"
            )
        assert exc_info.value.field == "entity_code"

    def test_type_change_onto_free_code(self, entity_service, make_entity, ctx):
        vendor = make_entity("Acme Supplies", entity_type="vendor", entity_code="C3")
        updated = entity_service.upsert(ctx, entity_id=vendor.id, entity_type="customer")
        assert updated.id == vendor.id
        assert updated.entity_type == "customer"
        assert updated.entity_code == "C3"

    def test_unknown_id(self, entity_service, ctx):
        with pytest.raises(EntityNotFoundError):
            entity_service.upsert(ctx, entity_id=uuid4(), entity_name="x")

    def test_other_tenant_id_is_not_found(self, entity_service, make_entity, ctx, other_ctx):
        theirs = make_entity("Theirs", context=other_ctx)
        with pytest.raises(EntityNotFoundError) as exc_info:
            entity_service.upsert(ctx, entity_id=theirs.id, entity_name="Hijacked")
        assert exc_info.value.code == "NOT_FOUND"

    def test_dynamic_fields_merge(self, entity_service, make_entity, ctx):
        created = make_entity(
            "Sarah",
            dynamic_fields={"email": {"field_type": "text", "value": "a@x.com", "smart_code": FIELD_SC}},
        )
        updated = entity_service.upsert(
            ctx,
            entity_id=created.id,
            dynamic_fields={"phone": {"field_type": "text", "value": "555", "smart_code": FIELD_SC}},
        )
        assert updated.field_value("email") == "a@x.com"
        assert updated.field_value("phone") == "555"


class TestConvergence:
    def test_lost_insert_race_converges(self, entity_service, make_entity, ctx, captured_logs):
        winner = make_entity("Sarah", entity_code="CUST-001")

        lost = entity_service._insert(
            ctx, "customer", "Sarah (dup)", "CUST-001", ENTITY_SC, None, None
        )
        assert lost is None
        assert any(
            r["message"] == "entity_create_race_converged" for r in captured_logs()
        )

        again = entity_service.upsert(
            ctx,
            entity_type="customer",
            entity_name="Sarah",
            smart_code=ENTITY_SC,
            entity_code="CUST-001",
        )
        assert again.id == winner.id
        assert again.is_new is False

    def test_session_usable_after_lost_race(self, entity_service, make_entity, ctx):
        make_entity("Sarah", entity_code="CUST-001")
        entity_service._insert(ctx, "customer", "dup", "CUST-001", ENTITY_SC, None, None)
        info = make_entity("Another", entity_code="CUST-002")
        assert info.is_new is True


class TestDelete:
    def test_soft_delete_archives(self, entity_service, make_entity, ctx):
        created = make_entity("Sarah")
        archived = entity_service.delete(ctx, created.id)
        assert archived.status == "archived"
        assert archived.id == created.id

    def test_hard_delete_removes_entity_and_fields(self, entity_service, make_entity, ctx, session):
        created = make_entity(
            "Sarah",
            dynamic_fields={"email": {"field_type": "text", "value": "a@x.com", "smart_code": FIELD_SC}},
        )
        snapshot = entity_service.delete(ctx, created.id, hard=True)
        assert snapshot.id == created.id
        assert session.get(Entity, created.id) is None
        remaining = session.execute(
            select(DynamicData).where(DynamicData.entity_id == created.id)
        ).scalars().all()
        assert remaining == []

    def test_hard_delete_blocked_by_relationship(
        self, entity_service, relationship_service, make_entity, ctx
    ):
        customer = make_entity("Sarah")
        branch = make_entity("Park Regis", entity_type="branch")
        relationship_service.upsert(ctx, customer.id, branch.id, "member_of", REL_SC)

        for target in (customer, branch):
            with pytest.raises(EntityReferencedError) as exc_info:
                entity_service.delete(ctx, target.id, hard=True)
            assert exc_info.value.referenced_by == "relationships"

    def test_hard_delete_blocked_by_transaction(
        self, entity_service, transaction_service, make_entity, ctx
    ):
        customer = make_entity("Sarah")
        transaction_service.emit(
            ctx,
            {
                "transaction_type": "sale",
                "smart_code": "HERA.SALON.TXN.SALE.CREATE.v1",
                "source_entity_id": str(customer.id),
            },
            [],
        )
        with pytest.raises(EntityReferencedError) as exc_info:
            entity_service.delete(ctx, customer.id, hard=True)
        assert exc_info.value.referenced_by == "transactions"

    def test_delete_other_tenant_is_not_found(self, entity_service, make_entity, ctx, other_ctx):
        theirs = make_entity("Theirs", context=other_ctx)
        with pytest.raises(EntityNotFoundError):
            entity_service.delete(ctx, theirs.id, hard=True)
