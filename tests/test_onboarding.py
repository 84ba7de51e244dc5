"""Tests for the onboarding wizard and tenant creation."""

import pytest

from app.core.exceptions import OnboardingError
from app.schemas import AppRole, TenantStatus
from app.services.onboarding import OnboardingForm, OnboardingService
from app.services.stores import InMemoryRoleStore

PASSWORD = "secret123"


class FailingGrantRoleStore(InMemoryRoleStore):
    async def assign_role(self, user_id, tenant_id, role):
        raise RuntimeError("role table locked")


def complete_form(**overrides) -> OnboardingForm:
    values = {
        "name": "Spice Route",
        "cuisine_type": "Indian",
        "phone": "+91 98765 43210",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "seating_capacity": "40",
    }
    values.update(overrides)
    return OnboardingForm(**values)


@pytest.fixture
def service(tenant_store, role_store) -> OnboardingService:
    return OnboardingService(tenant_store, role_store)


@pytest.fixture
async def signed_up(authority):
    await authority.signup("owner@restaurant.com", PASSWORD, "Priya Sharma")
    return authority


class TestOnboardingForm:

    def test_step_requirements(self):
        form = OnboardingForm(name="Spice Route", cuisine_type="Indian")

        assert form.missing_fields(1) == ["phone"]
        assert not form.can_proceed(1)
        assert form.missing_fields(2) == ["address", "city"]
        assert form.can_proceed(3)
        assert form.can_proceed(4)

    def test_blank_values_count_as_missing(self):
        form = complete_form(city="   ")
        assert form.missing_fields(2) == ["city"]

    def test_unknown_step(self):
        with pytest.raises(ValueError):
            OnboardingForm().can_proceed(5)

    def test_slug_follows_name(self):
        assert complete_form(name="The Curry House & Bar").slug == "the-curry-house-bar"

    def test_full_address(self):
        assert complete_form().full_address() == "12 MG Road, Bengaluru, Karnataka 560001"
        assert complete_form(state="", pincode="").full_address() == "12 MG Road, Bengaluru"

    def test_invalid_time_rejected(self):
        with pytest.raises(ValueError):
            complete_form(opening_time="25:00")

    def test_tenant_create_is_active_with_settings(self):
        data = complete_form().to_tenant_create()

        assert data.status == TenantStatus.ACTIVE
        assert data.slug == "spice-route"
        assert data.settings["seating_capacity"] == "40"
        assert data.settings["opening_time"] == "09:00"
        assert data.settings["delivery_enabled"] is True


class TestOnboardingService:

    @pytest.mark.asyncio
    async def test_complete_binds_owner(self, service, signed_up, role_store):
        assert signed_up.state.needs_onboarding

        tenant = await service.complete(signed_up, complete_form())

        state = signed_up.state
        assert state.tenant == tenant
        assert state.roles == frozenset({AppRole.OWNER})
        assert not state.needs_onboarding
        assert signed_up.has_role(AppRole.OWNER)
        assert [a.role for a in await role_store.list_role_assignments(state.identity.id)] == [AppRole.OWNER]

    @pytest.mark.asyncio
    async def test_returning_owner_is_active_on_next_login(self, service, signed_up, provider, role_store):
        await service.complete(signed_up, complete_form())
        await signed_up.logout()

        state = await signed_up.login("owner@restaurant.com", PASSWORD)

        assert state.roles == frozenset({AppRole.OWNER})
        assert not state.needs_onboarding

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, service, authority):
        await authority.resolve_existing_session()

        with pytest.raises(OnboardingError) as exc_info:
            await service.complete(authority, complete_form())

        assert exc_info.value.code == "not_authenticated"

    @pytest.mark.asyncio
    async def test_incomplete_form_reports_first_step(self, service, signed_up):
        with pytest.raises(OnboardingError) as exc_info:
            await service.complete(signed_up, complete_form(address=""))

        assert exc_info.value.code == "incomplete_form"
        assert "Step 2" in exc_info.value.message
        assert signed_up.state.needs_onboarding

    @pytest.mark.asyncio
    async def test_name_without_letters_rejected(self, service, signed_up):
        with pytest.raises(OnboardingError) as exc_info:
            await service.complete(signed_up, complete_form(name="!!!"))

        assert exc_info.value.code == "invalid_form"

    @pytest.mark.asyncio
    async def test_slug_taken(self, service, signed_up, tenant_store):
        await service.complete(signed_up, complete_form())

        with pytest.raises(OnboardingError) as exc_info:
            await service.complete(signed_up, complete_form(name="Spice-Route"))

        assert exc_info.value.code == "slug_taken"

    @pytest.mark.asyncio
    async def test_failed_owner_grant_removes_tenant(self, signed_up, tenant_store, role_store):
        failing = OnboardingService(tenant_store, FailingGrantRoleStore())

        with pytest.raises(OnboardingError) as exc_info:
            await failing.complete(signed_up, complete_form())

        assert exc_info.value.code == "owner_grant_failed"
        assert await tenant_store.get_tenant_by_slug("spice-route") is None
        assert signed_up.state.needs_onboarding

        tenant = await OnboardingService(tenant_store, role_store).complete(signed_up, complete_form())

        assert tenant.slug == "spice-route"
        assert signed_up.has_role(AppRole.OWNER)
