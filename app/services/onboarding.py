"""
Restaurant Onboarding

Four-step wizard that creates a tenant and makes the signed-in user its
owner:
    1. Restaurant Info  (name, cuisine, phone)
    2. Location         (address, city)
    3. Operations       (hours, seating, dine-in / delivery)
    4. Confirm

Completing the wizard is the only path from "needs onboarding" to an
active session.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from app.core.exceptions import OnboardingError
from app.schemas import AppRole, Tenant, TenantCreate, TenantStatus, derive_slug
from app.services.session import SessionAuthority
from app.services.stores import BaseRoleStore, BaseTenantStore

logger = logging.getLogger(__name__)


CUISINE_TYPES = [
    "Indian", "Chinese", "Italian", "Mexican", "Japanese",
    "Thai", "American", "French", "Mediterranean", "Korean",
    "Middle Eastern", "Ethiopian", "Multi-cuisine", "Other",
]

STEPS = {
    1: "Restaurant Info",
    2: "Location",
    3: "Operations",
    4: "Confirm",
}

# Fields that must be filled before leaving each step
_REQUIRED_BY_STEP = {
    1: ("name", "cuisine_type", "phone"),
    2: ("address", "city"),
    3: (),
    4: (),
}

_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class OnboardingForm(BaseModel):
    """Everything the wizard collects."""
    name: str = Field(default="", max_length=200, examples=["Spice Route"])
    cuisine_type: str = Field(default="", examples=["Indian"])
    phone: str = Field(default="", max_length=30)
    email: str = Field(default="", max_length=255)
    address: str = Field(default="", max_length=300)
    city: str = Field(default="", max_length=100)
    state: str = Field(default="", max_length=100)
    pincode: str = Field(default="", max_length=20)
    seating_capacity: str = Field(default="")
    opening_time: str = Field(default="09:00", pattern=_TIME_PATTERN)
    closing_time: str = Field(default="23:00", pattern=_TIME_PATTERN)
    delivery_enabled: bool = True
    dine_in_enabled: bool = True

    @computed_field
    @property
    def slug(self) -> str:
        return derive_slug(self.name)

    def missing_fields(self, step: int) -> list[str]:
        """Required fields still blank for a step."""
        if step not in STEPS:
            raise ValueError(f"Unknown onboarding step {step}")
        return [name for name in _REQUIRED_BY_STEP[step] if not str(getattr(self, name)).strip()]

    def can_proceed(self, step: int) -> bool:
        return not self.missing_fields(step)

    def full_address(self) -> str:
        locality = " ".join(part for part in (self.state.strip(), self.pincode.strip()) if part)
        parts = [self.address.strip(), self.city.strip(), locality]
        return ", ".join(part for part in parts if part)

    def to_tenant_create(self) -> TenantCreate:
        return TenantCreate(
            name=self.name.strip(),
            slug=self.slug,
            cuisine_type=self.cuisine_type or None,
            address=self.full_address() or None,
            phone=self.phone or None,
            email=self.email or None,
            status=TenantStatus.ACTIVE,
            settings={
                "seating_capacity": self.seating_capacity,
                "opening_time": self.opening_time,
                "closing_time": self.closing_time,
                "delivery_enabled": self.delivery_enabled,
                "dine_in_enabled": self.dine_in_enabled,
            },
        )


class OnboardingService:
    """
    Creates the tenant, grants the owner role and binds the session.

    Example:
        >>> service = OnboardingService(get_tenant_store(), get_role_store())
        >>> tenant = await service.complete(authority, form)
        >>> authority.has_role(AppRole.OWNER)
        True
    """

    def __init__(self, tenant_store: BaseTenantStore, role_store: BaseRoleStore):
        self.tenant_store = tenant_store
        self.role_store = role_store

    def first_incomplete_step(self, form: OnboardingForm) -> Optional[int]:
        for step in STEPS:
            if not form.can_proceed(step):
                return step
        return None

    async def complete(self, authority: SessionAuthority, form: OnboardingForm) -> Tenant:
        """
        Finish onboarding for the signed-in user.

        Raises:
            OnboardingError: not signed in, form incomplete, slug taken or
                owner grant failed (the tenant is removed again)
        """
        identity = authority.state.identity
        if identity is None:
            raise OnboardingError("Sign in before creating a restaurant", code="not_authenticated")

        step = self.first_incomplete_step(form)
        if step is not None:
            missing = ", ".join(form.missing_fields(step))
            raise OnboardingError(
                f"Step {step} ({STEPS[step]}) is incomplete: {missing}",
                code="incomplete_form",
            )

        try:
            data = form.to_tenant_create()
        except ValueError as e:
            raise OnboardingError(str(e), code="invalid_form") from e

        tenant = await self.tenant_store.create_tenant(data)
        try:
            await self.role_store.assign_role(identity.id, tenant.id, AppRole.OWNER)
        except Exception as e:
            # Every tenant has an owner
            logger.error(f"Owner grant failed for {tenant.slug}; removing tenant - {e}")
            await self.tenant_store.delete_tenant(tenant.id)
            raise OnboardingError(
                "Could not make you the owner of this restaurant. Please try again.",
                code="owner_grant_failed",
            ) from e
        authority.bind_tenant(tenant, roles=[AppRole.OWNER])

        logger.info(f"Onboarding complete - {tenant.slug} owned by {identity.id}")
        return tenant
