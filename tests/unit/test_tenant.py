"""Unit tests for tenant context resolution."""

from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from hera_kernel.domain.tenant import (
    PLATFORM_ORGANIZATION_ID,
    TenantContext,
    parse_uuid,
    resolve_actor,
)
from hera_kernel.exceptions import (
    CrossTenantViolationError,
    MissingActorError,
    MissingTenantContextError,
)


class TestParseUuid:
    def test_uuid_passthrough(self):
        value = uuid4()
        assert parse_uuid(value) is value

    def test_string(self):
        value = uuid4()
        assert parse_uuid(f" {value} ") == value

    @pytest.mark.parametrize("raw", [None, "", "not-a-uuid", 123])
    def test_invalid(self, raw):
        assert parse_uuid(raw) is None


class TestResolve:
    def test_write_context(self):
        org, actor = uuid4(), uuid4()
        ctx = TenantContext.resolve(str(org), str(actor), write=True)
        assert ctx.organization_id == org
        assert ctx.actor_user_id == actor

    @pytest.mark.parametrize("org", [None, "", "garbage"])
    def test_missing_organization(self, org):
        with pytest.raises(MissingTenantContextError) as exc_info:
            TenantContext.resolve(org, uuid4(), write=True)
        assert exc_info.value.code == "MISSING_TENANT_CONTEXT"
        assert exc_info.value.field == "organization_id"

    def test_platform_organization_rejected(self):
        with pytest.raises(MissingTenantContextError) as exc_info:
            TenantContext.resolve(PLATFORM_ORGANIZATION_ID, uuid4(), write=False)
        assert "platform" in str(exc_info.value)

    def test_missing_actor_on_write(self):
        with pytest.raises(MissingActorError) as exc_info:
            TenantContext.resolve(uuid4(), None, write=True)
        assert exc_info.value.code == "MISSING_ACTOR"

    def test_missing_actor_on_read(self):
        with pytest.raises(MissingTenantContextError) as exc_info:
            TenantContext.resolve(uuid4(), None, write=False)
        assert exc_info.value.field == "actor_user_id"

    def test_organization_checked_before_actor(self):
        with pytest.raises(MissingTenantContextError):
            TenantContext.resolve(None, None, write=True)

    def test_nil_actor_rejected(self):
        with pytest.raises(MissingActorError):
            resolve_actor(UUID(int=0), write=True)


class TestOwnership:
    def test_assert_owns(self):
        ctx = TenantContext(organization_id=uuid4(), actor_user_id=uuid4())
        row = SimpleNamespace(id=uuid4(), organization_id=ctx.organization_id)
        ctx.assert_owns(row)

    def test_foreign_row(self):
        ctx = TenantContext(organization_id=uuid4(), actor_user_id=uuid4())
        row = SimpleNamespace(id=uuid4(), organization_id=uuid4())
        assert not ctx.owns(row)
        with pytest.raises(CrossTenantViolationError) as exc_info:
            ctx.assert_owns(row, "Entity")
        assert exc_info.value.record_type == "Entity"
        assert exc_info.value.record_id == str(row.id)
