"""
Domain eligibility - Rejects TLDs that cannot be registered automatically.

Some registries require documents (business registration, residency)
that the storefront does not collect. Carts containing such domains are
refused as a whole before any registrar call, and support follows up.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .models import CartItem, RestrictedDomain

DEFAULT_RESTRICTION_REASON = "Additional verification required"


@dataclass(frozen=True)
class TldRequirement:
    tld: str
    name: str
    supported: bool
    requires_additional_details: bool
    warning_message: str


RESTRICTED_TLDS: dict[str, TldRequirement] = {
    "au": TldRequirement(
        tld="au",
        name="Australian (.au)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "Australian domains require business registration and additional "
            "verification. Please contact support for assistance."
        ),
    ),
    "co.uk": TldRequirement(
        tld="co.uk",
        name="UK Commercial (.co.uk)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "UK commercial domains require business registration. "
            "Please contact support for assistance."
        ),
    ),
    "uk": TldRequirement(
        tld="uk",
        name="UK (.uk)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "UK domains require business registration. Please contact support for assistance."
        ),
    ),
    "ca": TldRequirement(
        tld="ca",
        name="Canadian (.ca)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "Canadian domains require business registration. "
            "Please contact support for assistance."
        ),
    ),
    "de": TldRequirement(
        tld="de",
        name="German (.de)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "German domains require business registration. Please contact support for assistance."
        ),
    ),
    "eu": TldRequirement(
        tld="eu",
        name="European Union (.eu)",
        supported=False,
        requires_additional_details=True,
        warning_message=(
            "EU domains require EU citizenship, residence, or business establishment. "
            "Indian residents without EU connections cannot register .eu domains. "
            "Please contact support for assistance."
        ),
    ),
}

# Registries that refuse registrations shorter than N years.
MINIMUM_REGISTRATION_YEARS: dict[str, int] = {
    "ai": 2,
}


@dataclass(frozen=True)
class EligibilityReport:
    eligible: list[CartItem] = field(default_factory=list)
    restricted: list[RestrictedDomain] = field(default_factory=list)

    @property
    def has_restrictions(self) -> bool:
        return bool(self.restricted)


@dataclass
class EligibilityFilter:
    """Splits a cart into items that can be registered and items that cannot."""

    requirements: Mapping[str, TldRequirement] = field(default_factory=lambda: RESTRICTED_TLDS)
    minimum_years: Mapping[str, int] = field(default_factory=lambda: MINIMUM_REGISTRATION_YEARS)

    def filter(self, items: Iterable[CartItem]) -> EligibilityReport:
        eligible: list[CartItem] = []
        restricted: list[RestrictedDomain] = []
        for item in items:
            reason = self.restriction_reason(item)
            if reason is None:
                eligible.append(item)
            else:
                restricted.append(RestrictedDomain(domain_name=item.domain_name, reason=reason))
        return EligibilityReport(eligible=eligible, restricted=restricted)

    def restriction_reason(self, item: CartItem) -> str | None:
        """Return why the item cannot be registered automatically, or None."""
        requirement = self._lookup(self.requirements, item.tld)
        if requirement is not None and (
            requirement.requires_additional_details or not requirement.supported
        ):
            return requirement.warning_message or DEFAULT_RESTRICTION_REASON

        minimum = self._lookup(self.minimum_years, item.tld)
        if minimum is not None and item.registration_period < minimum:
            return f".{item.tld} domains require a minimum registration period of {minimum} years"

        return None

    @staticmethod
    def _lookup(table: Mapping, tld: str):
        """Match the longest listed suffix, so com.au falls back to au."""
        labels = tld.split(".")
        for start in range(len(labels)):
            entry = table.get(".".join(labels[start:]))
            if entry is not None:
                return entry
        return None
