"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON field names are camelCase, as the storefront sends and expects them.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from registrar_checkout.domain.models import (
    Address,
    CartItem,
    ChargeConfirmation,
    CustomerProfile,
    Order,
    OrderResult,
    PendingDomainRecord,
)
from registrar_checkout.domain.pending import PendingVerification
from registrar_checkout.domain.ports import PendingStatus


class ApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartItemRequest(ApiModel):
    domain_name: str = Field(
        ..., min_length=3, max_length=253, pattern=r"^[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"
    )
    price: Decimal = Field(..., ge=0, description="Total price for the whole registration period")
    currency: str | None = Field(
        None, min_length=3, max_length=3, description="Defaults to the store currency"
    )
    registration_period: int = Field(1, ge=1, le=10, description="Years")

    def to_domain(self, default_currency: str) -> CartItem:
        return CartItem(
            domain_name=self.domain_name.strip().lower(),
            price=self.price,
            currency=(self.currency or default_currency).upper(),
            registration_period=self.registration_period,
        )


class AddressRequest(ApiModel):
    line1: str
    city: str
    state: str
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    zipcode: str


class CustomerRequest(ApiModel):
    """Storefront user who paid. Supplied by the authenticated storefront backend."""

    user_id: str = Field(..., min_length=1)
    email: EmailStr
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    phone: str | None = None
    phone_cc: str | None = None
    company_name: str | None = None
    address: AddressRequest | None = None

    def to_domain(self) -> CustomerProfile:
        address = None
        if self.address is not None:
            address = Address(
                line1=self.address.line1,
                city=self.address.city,
                state=self.address.state,
                country=self.address.country.upper(),
                zipcode=self.address.zipcode,
            )
        return CustomerProfile(
            user_id=self.user_id,
            email=str(self.email).strip().lower(),
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            phone_cc=self.phone_cc,
            company_name=self.company_name,
            address=address,
        )


class VerifyPaymentRequest(ApiModel):
    """
    Request model for payment verification.

    The gateway identifiers also accept the checkout widget's own
    razorpay_* field names.
    """

    gateway_order_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("gatewayOrderId", "razorpay_order_id")
    )
    gateway_charge_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("gatewayChargeId", "razorpay_payment_id")
    )
    signature: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("signature", "razorpay_signature")
    )
    cart_items: list[CartItemRequest] = Field(..., min_length=1)
    customer: CustomerRequest

    def confirmation(self) -> ChargeConfirmation:
        return ChargeConfirmation(
            gateway_order_id=self.gateway_order_id,
            gateway_charge_id=self.gateway_charge_id,
            signature=self.signature,
        )


class DomainResultResponse(ApiModel):
    domain_name: str
    status: str
    registrar_order_id: str | None = None
    error: str | None = None


class OrderResultResponse(ApiModel):
    """Response model for a processed (or replayed) checkout."""

    order_id: str
    invoice_number: str | None
    per_domain_results: list[DomainResultResponse]
    successful_domains: list[str]

    @classmethod
    def from_result(cls, result: OrderResult) -> "OrderResultResponse":
        return cls(
            order_id=result.order_id,
            invoice_number=result.invoice_number,
            per_domain_results=[
                DomainResultResponse(
                    domain_name=r.domain_name,
                    status=r.status.value,
                    registrar_order_id=r.registrar_order_id,
                    error=r.error,
                )
                for r in result.per_domain_results
            ],
            successful_domains=result.successful_domains,
        )


class StatusEventResponse(ApiModel):
    step: str
    message: str
    progress: int
    timestamp: datetime


class DomainOutcomeResponse(ApiModel):
    domain_name: str
    price: Decimal
    currency: str
    registration_period: int
    status: str
    error: str | None = None
    registrar_order_id: str | None = None
    registered_at: datetime | None = None
    expires_at: datetime | None = None
    events: list[StatusEventResponse]


class OrderStatusResponse(ApiModel):
    """Booking status of an order, with each domain's audit trail."""

    order_id: str
    invoice_number: str | None
    status: str
    amount: Decimal
    currency: str
    successful_domains: list[str]
    failed_domains: list[str]
    domains: list[DomainOutcomeResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderStatusResponse":
        return cls(
            order_id=order.order_id,
            invoice_number=order.invoice_number,
            status=order.status.value,
            amount=order.amount,
            currency=order.currency,
            successful_domains=order.successful_domains,
            failed_domains=order.failed_domains,
            domains=[
                DomainOutcomeResponse(
                    domain_name=d.domain_name,
                    price=d.price,
                    currency=d.currency,
                    registration_period=d.registration_period,
                    status=d.status.value,
                    error=d.error,
                    registrar_order_id=d.registrar_order_id,
                    registered_at=d.registered_at,
                    expires_at=d.expires_at,
                    events=[
                        StatusEventResponse(
                            step=e.step,
                            message=e.message,
                            progress=e.progress,
                            timestamp=e.timestamp,
                        )
                        for e in d.events
                    ],
                )
                for d in order.domains
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class PendingDomainResponse(ApiModel):
    id: str
    domain_name: str
    price: Decimal
    currency: str
    registration_period: int
    user_id: str
    order_id: str
    status: str
    reason: str
    admin_notes: str | None = None
    verification_attempts: int
    last_verified_at: datetime | None = None
    registrar_order_id: str | None = None
    registered_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: PendingDomainRecord) -> "PendingDomainResponse":
        return cls(
            id=str(record.id),
            domain_name=record.domain_name,
            price=record.price,
            currency=record.currency,
            registration_period=record.registration_period,
            user_id=record.user_id,
            order_id=record.order_id,
            status=record.status.value,
            reason=record.reason,
            admin_notes=record.admin_notes,
            verification_attempts=record.verification_attempts,
            last_verified_at=record.last_verified_at,
            registrar_order_id=record.registrar_order_id,
            registered_at=record.registered_at,
            expires_at=record.expires_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ResolvePendingRequest(ApiModel):
    """Admin resolution of a pending domain."""

    status: Literal["registered", "failed"]
    reason: str | None = Field(None, max_length=500)
    admin_notes: str | None = Field(None, max_length=2000)
    registrar_order_id: str | None = None


class PendingDomainListResponse(ApiModel):
    pending_domains: list[PendingDomainResponse]

    @classmethod
    def from_records(cls, records: list[PendingDomainRecord]) -> "PendingDomainListResponse":
        return cls(pending_domains=[PendingDomainResponse.from_record(r) for r in records])


class VerifyPendingRequest(ApiModel):
    """Pending domains to check at the registry."""

    pending_ids: list[str] = Field(..., min_length=1, max_length=100)


class PendingVerificationResponse(ApiModel):
    availability: str | None = Field(None, description="Registry status; null if the check failed")
    pending_domain: PendingDomainResponse


class VerificationSummary(ApiModel):
    checked: int
    registered: int
    failed: int
    still_pending: int


class VerifyPendingResponse(ApiModel):
    results: list[PendingVerificationResponse]
    summary: VerificationSummary

    @classmethod
    def from_results(cls, results: list[PendingVerification]) -> "VerifyPendingResponse":
        statuses = [r.record.status for r in results]
        return cls(
            results=[
                PendingVerificationResponse(
                    availability=r.availability.value if r.availability else None,
                    pending_domain=PendingDomainResponse.from_record(r.record),
                )
                for r in results
            ],
            summary=VerificationSummary(
                checked=len(results),
                registered=statuses.count(PendingStatus.REGISTERED),
                failed=statuses.count(PendingStatus.FAILED),
                still_pending=statuses.count(PendingStatus.PENDING),
            ),
        )


class RestrictedDomainResponse(ApiModel):
    domain_name: str
    reason: str


class ErrorResponse(ApiModel):
    """Standard error response model."""

    error_kind: str
    message: str
    restricted_domains: list[RestrictedDomainResponse] | None = None
    support_contact: str | None = None


class WebhookResponse(ApiModel):
    status: str = "ok"
    action: str
