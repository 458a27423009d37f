"""
ResellerClub registrar adapter - Implements Registrar protocol.

Talks to the ResellerClub HTTP API (auth-userid / api-key query
parameters, JSON responses). Every outcome, including timeouts and
connection errors, is returned as RegistrarSuccess, CustomerIdentity or
RegistrarFailure; nothing registrar-related is raised to the caller.

The API reports some failures as HTTP 200 with {"status": "ERROR"}, so
the body is checked as well as the status code.
"""

import logging
import secrets
from typing import Any

import httpx

from registrar_checkout.config.settings import Settings
from registrar_checkout.domain.models import CustomerProfile
from registrar_checkout.domain.ports import (
    AvailabilityStatus,
    CustomerIdentity,
    DomainAvailability,
    DomainRegistrationRequest,
    RegistrarErrorKind,
    RegistrarFailure,
    RegistrarSuccess,
)

logger = logging.getLogger(__name__)

# HTTP status -> (kind, message)
_STATUS_ERRORS: dict[int, tuple[RegistrarErrorKind, str]] = {
    400: (
        RegistrarErrorKind.VALIDATION,
        "Invalid domain registration request. Please check domain data.",
    ),
    401: (
        RegistrarErrorKind.AUTHENTICATION,
        "ResellerClub API authentication failed. Please check API credentials.",
    ),
    403: (
        RegistrarErrorKind.AUTHENTICATION,
        "ResellerClub API access forbidden. Please check API permissions.",
    ),
    409: (
        RegistrarErrorKind.CONFLICT,
        "Domain registration conflict. Domain may already be registered.",
    ),
    429: (
        RegistrarErrorKind.RATE_LIMITED,
        "ResellerClub API rate limit exceeded. Please try again later.",
    ),
}
_SERVER_ERROR = "ResellerClub API server error. Please try again later."
_NETWORK_ERROR = "ResellerClub API connection failed. Please check network connectivity."

_FATAL_LOOKUP_ERRORS = {
    RegistrarErrorKind.AUTHENTICATION,
    RegistrarErrorKind.RATE_LIMITED,
    RegistrarErrorKind.TIMEOUT,
    RegistrarErrorKind.NETWORK,
}

DEFAULT_LANGUAGE = "en"
# Used for the registrar account only; the storefront owns the real login.
_SIGNUP_PASSWORD_LENGTH = 16


class ResellerClubRegistrar:
    """
    Implements Registrar protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Thread-safe: httpx.Client may be shared across the registration workers.
    """

    def __init__(
        self,
        client: httpx.Client,
        auth_userid: str,
        api_key: str,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._client = client
        self._auth = {"auth-userid": auth_userid, "api-key": api_key}
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResellerClubRegistrar":
        timeout = httpx.Timeout(settings.registrar_timeout_seconds, connect=5.0)
        client = httpx.Client(base_url=settings.registrar_api_url, timeout=timeout)
        return cls(
            client,
            auth_userid=settings.registrar_auth_userid,
            api_key=settings.registrar_api_key,
            timeout_seconds=settings.registrar_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def register_domain(
        self, request: DomainRegistrationRequest
    ) -> RegistrarSuccess | RegistrarFailure:
        params: dict[str, Any] = {
            "domain-name": request.domain_name,
            "years": request.years,
            "customer-id": request.customer_id,
            "reg-contact-id": request.admin_contact_id,
            "admin-contact-id": request.admin_contact_id,
            "tech-contact-id": request.tech_contact_id,
            "billing-contact-id": request.billing_contact_id,
            "invoice-option": "NoInvoice",
        }
        if request.name_servers:
            params["ns"] = list(request.name_servers)

        logger.info(
            "Registering %s for %d year(s), customer %s",
            request.domain_name,
            request.years,
            request.customer_id,
        )
        result = self._call("POST", "/api/domains/register.json", params)
        if isinstance(result, RegistrarFailure):
            logger.error("Registration of %s failed: %s", request.domain_name, result.message)
            return result

        data = result if isinstance(result, dict) else {"result": result}
        order_id = data.get("entityid") or data.get("orderid")
        logger.info("Registered %s (registrar order %s)", request.domain_name, order_id)
        return RegistrarSuccess(
            registrar_order_id=str(order_id) if order_id is not None else None,
            data=data,
        )

    def check_availability(self, domain_name: str) -> DomainAvailability | RegistrarFailure:
        """Ask the registry for the status of one fully qualified domain name."""
        label, _, tld = domain_name.partition(".")
        if not label or not tld:
            return RegistrarFailure(
                kind=RegistrarErrorKind.VALIDATION, message=f"Invalid domain name: {domain_name}"
            )
        result = self._call(
            "GET", "/api/domains/available.json", {"domain-name": label, "tlds": tld}
        )
        if isinstance(result, RegistrarFailure):
            logger.error("Availability check for %s failed: %s", domain_name, result.message)
            return result

        entry = result.get(domain_name) if isinstance(result, dict) else None
        raw = entry.get("status") if isinstance(entry, dict) else None
        try:
            status = AvailabilityStatus(str(raw).lower())
        except ValueError:
            status = AvailabilityStatus.UNKNOWN
        logger.info("Availability of %s: %s", domain_name, status.value)
        return DomainAvailability(domain_name=domain_name, status=status)

    def get_or_create_customer_and_contact(
        self, profile: CustomerProfile
    ) -> CustomerIdentity | RegistrarFailure:
        """
        Find the registrar customer for the profile's email or sign one up,
        then find or add a contact for it.
        """
        customer_id = self._find_customer(profile.email)
        if isinstance(customer_id, RegistrarFailure):
            return customer_id
        if customer_id is None:
            created = self._call(
                "POST", "/api/customers/v2/signup.json", self._signup_params(profile)
            )
            if isinstance(created, RegistrarFailure):
                return created
            customer_id = str(created)
            logger.info("Created registrar customer %s for %s", customer_id, profile.email)

        contact_id = self._find_contact(customer_id, profile.email)
        if contact_id is None:
            created = self._call(
                "POST", "/api/contacts/add.json", self._contact_params(profile, customer_id)
            )
            if isinstance(created, RegistrarFailure):
                return created
            contact_id = str(created)
            logger.info("Created registrar contact %s for customer %s", contact_id, customer_id)

        return CustomerIdentity(customer_id=customer_id, contact_id=contact_id)

    def _find_customer(self, email: str) -> str | RegistrarFailure | None:
        found = self._call("GET", "/api/customers/details.json", {"username": email})
        # Unknown usernames come back as an error body; anything else is a real failure.
        if isinstance(found, RegistrarFailure) and found.kind in _FATAL_LOOKUP_ERRORS:
            return found
        if isinstance(found, dict) and found.get("customerid"):
            return str(found["customerid"])
        return None

    def _find_contact(self, customer_id: str, email: str) -> str | None:
        found = self._call(
            "GET",
            "/api/contacts/search.json",
            {"customer-id": customer_id, "email": email, "no-of-records": 10, "page-no": 1},
        )
        if not isinstance(found, dict):
            return None
        for entry in found.get("result") or []:
            contact_id = entry.get("contact.contactid") or entry.get("entity.entityid")
            if contact_id:
                return str(contact_id)
        return None

    def _signup_params(self, profile: CustomerProfile) -> dict[str, Any]:
        params = self._identity_params(profile)
        params.update(
            {
                "username": profile.email,
                "passwd": secrets.token_urlsafe(_SIGNUP_PASSWORD_LENGTH),
                "lang-pref": DEFAULT_LANGUAGE,
            }
        )
        return params

    def _contact_params(self, profile: CustomerProfile, customer_id: str) -> dict[str, Any]:
        params = self._identity_params(profile)
        params.update({"email": profile.email, "customer-id": customer_id, "type": "Contact"})
        return params

    def _identity_params(self, profile: CustomerProfile) -> dict[str, Any]:
        address = profile.address
        return {
            "name": profile.full_name,
            "company": profile.company_name or "N/A",
            "address-line-1": address.line1 if address else "N/A",
            "city": address.city if address else "N/A",
            "state": address.state if address else "N/A",
            "country": address.country if address else "IN",
            "zipcode": address.zipcode if address else "000000",
            "phone-cc": profile.phone_cc or "91",
            "phone": profile.phone or "0000000000",
        }

    def _call(self, method: str, path: str, params: dict[str, Any]) -> Any:
        """Perform one API call. Returns the decoded body or a RegistrarFailure."""
        try:
            response = self._client.request(method, path, params={**self._auth, **params})
        except httpx.TimeoutException:
            logger.error("Registrar timeout on %s", path)
            return RegistrarFailure(
                kind=RegistrarErrorKind.TIMEOUT,
                message=f"Registrar request timed out after {self._timeout_seconds:g}s",
            )
        except httpx.TransportError as e:
            logger.error("Registrar unreachable on %s: %s", path, e)
            return RegistrarFailure(kind=RegistrarErrorKind.NETWORK, message=_NETWORK_ERROR)

        logger.debug("Registrar %s %s -> HTTP %d", method, path, response.status_code)

        if response.status_code in _STATUS_ERRORS:
            kind, message = _STATUS_ERRORS[response.status_code]
            return RegistrarFailure(kind=kind, message=message)
        if response.status_code >= 500:
            return RegistrarFailure(
                kind=RegistrarErrorKind.SERVER_ERROR, message=_SERVER_ERROR
            )
        if response.status_code != 200:
            return RegistrarFailure(
                kind=RegistrarErrorKind.UNKNOWN,
                message=f"Unexpected registrar response (HTTP {response.status_code})",
            )

        try:
            body = response.json()
        except ValueError:
            return RegistrarFailure(
                kind=RegistrarErrorKind.UNKNOWN, message="Unreadable registrar response"
            )
        if isinstance(body, dict) and str(body.get("status", "")).upper() == "ERROR":
            return RegistrarFailure(
                kind=RegistrarErrorKind.VALIDATION,
                message=body.get("message") or "Registrar rejected the request",
            )
        return body

