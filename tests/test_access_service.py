from __future__ import annotations

import pytest

from chatdesk.core.errors import AccessDeniedError
from chatdesk.services.access_service import TenantAccessService
from support import grant


async def test_admin_reaches_every_tenant(db, seed) -> None:
    assert await TenantAccessService.can_access(db, seed.admin, seed.other_tenant.id)
    assert await TenantAccessService.accessible_tenant_ids(db, seed.admin) is None


async def test_home_tenant_is_always_accessible(db, seed) -> None:
    assert await TenantAccessService.can_access(db, seed.agent, seed.tenant.id)
    assert await TenantAccessService.can_access(db, seed.manager, seed.other_tenant.id)


async def test_manager_needs_a_grant_for_other_tenants(db, session_factory, seed) -> None:
    assert not await TenantAccessService.can_access(db, seed.manager, seed.tenant.id)

    await grant(session_factory, seed.manager, seed.tenant)

    assert await TenantAccessService.can_access(db, seed.manager, seed.tenant.id)
    assert await TenantAccessService.accessible_tenant_ids(db, seed.manager) == {
        seed.tenant.id,
        seed.other_tenant.id,
    }


async def test_support_agent_never_crosses_tenants(db, seed) -> None:
    assert not await TenantAccessService.can_access(db, seed.outsider, seed.tenant.id)
    with pytest.raises(AccessDeniedError) as excinfo:
        await TenantAccessService.require_access(db, seed.outsider, seed.tenant.id)
    assert excinfo.value.status_code == 403


async def test_denial_does_not_depend_on_tenant_existence(db, seed) -> None:
    with pytest.raises(AccessDeniedError):
        await TenantAccessService.require_access(db, seed.outsider, "no-such-tenant")
