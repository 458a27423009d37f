"""
API v1 routes.

Defines REST endpoints for the registrar checkout API. Domain errors
(CheckoutError) propagate to the application's exception handler, which
maps each error kind to its HTTP status.
"""

import json
import logging
from typing import Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool

from registrar_checkout.adapters.gateway.razorpay import verify_webhook_signature
from registrar_checkout.adapters.repository.postgres import PostgresOrderRepository
from registrar_checkout.api.dependencies import (
    get_checkout_service,
    get_event_handler,
    get_order_repository,
    get_pending_service,
    require_admin,
)
from registrar_checkout.api.models import (
    ErrorResponse,
    OrderResultResponse,
    OrderStatusResponse,
    PendingDomainListResponse,
    PendingDomainResponse,
    ResolvePendingRequest,
    VerifyPaymentRequest,
    VerifyPendingRequest,
    VerifyPendingResponse,
    WebhookResponse,
)
from registrar_checkout.config.settings import Settings, get_settings
from registrar_checkout.domain.checkout import CheckoutService
from registrar_checkout.domain.pending import PendingDomainService
from registrar_checkout.domain.ports import PendingStatus
from registrar_checkout.domain.webhooks import GatewayEventHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])


@router.post(
    "/payments/verify",
    response_model=OrderResultResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": ErrorResponse, "description": "Verification failed or restricted domains"},
        404: {"model": ErrorResponse, "description": "Charge not found at the gateway"},
        409: {"model": ErrorResponse, "description": "Charge processed concurrently"},
        422: {"description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Order could not be saved after payment"},
        503: {"model": ErrorResponse, "description": "Payment gateway unavailable"},
    },
    summary="Verify a payment and register the cart",
    description="Verify the gateway charge against its signature and the cart total, "
    "then register every domain. Replaying a processed charge returns the same order.",
)
async def verify_payment(
    request_data: VerifyPaymentRequest,
    service: CheckoutService = Depends(get_checkout_service),
    settings: Settings = Depends(get_settings),
) -> OrderResultResponse:
    """
    Verify payment and register domains.

    - **gatewayOrderId / gatewayChargeId / signature**: from the checkout widget
    - **cartItems**: domains with their total price and registration period; items
      without a currency use the store default
    - **customer**: storefront user who paid

    Registration is slow and must finish once the charge is verified, so the
    service runs in the worker thread pool and is not cancelled if the
    client disconnects.
    """
    result = await run_in_threadpool(
        service.process,
        request_data.confirmation(),
        [item.to_domain(settings.default_currency) for item in request_data.cart_items],
        request_data.customer.to_domain(),
    )
    return OrderResultResponse.from_result(result)


@router.get(
    "/orders/{order_id}",
    response_model=OrderStatusResponse,
    response_model_by_alias=True,
    responses={404: {"description": "Order not found"}},
    summary="Get booking status of an order",
)
def get_order(
    order_id: str,
    orders: PostgresOrderRepository = Depends(get_order_repository),
) -> OrderStatusResponse:
    order = orders.find_by_order_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderStatusResponse.from_order(order)


@router.get(
    "/pending-domains",
    response_model=PendingDomainListResponse,
    response_model_by_alias=True,
    responses={401: {"description": "Invalid admin credentials"}},
    summary="List pending domains",
    description="Pending domain records, newest first, optionally filtered by status.",
)
def list_pending_domains(
    status_filter: Literal["pending", "processing", "registered", "failed"] | None = Query(
        None, alias="status"
    ),
    _admin: str = Depends(require_admin),
    service: PendingDomainService = Depends(get_pending_service),
) -> PendingDomainListResponse:
    status_value = PendingStatus(status_filter) if status_filter else None
    return PendingDomainListResponse.from_records(service.list_records(status_value))


@router.post(
    "/pending-domains/verify",
    response_model=VerifyPendingResponse,
    response_model_by_alias=True,
    responses={
        401: {"description": "Invalid admin credentials"},
        404: {"model": ErrorResponse, "description": "None of the ids is a pending domain"},
    },
    summary="Check pending domains at the registry",
    description="Look each pending domain up at the registry. Domains registered through "
    "our account are resolved as registered, domains taken by others as failed; the rest "
    "stay pending with an updated reason.",
)
def verify_pending_domains(
    request_data: VerifyPendingRequest,
    admin: str = Depends(require_admin),
    service: PendingDomainService = Depends(get_pending_service),
) -> VerifyPendingResponse:
    logger.info("Admin %s verifying %d pending domain(s)", admin, len(request_data.pending_ids))
    return VerifyPendingResponse.from_results(service.verify(request_data.pending_ids))


@router.get(
    "/pending-domains/{pending_id}",
    response_model=PendingDomainResponse,
    response_model_by_alias=True,
    responses={
        401: {"description": "Invalid admin credentials"},
        404: {"model": ErrorResponse, "description": "Pending domain not found"},
    },
    summary="Get a pending domain",
)
def get_pending_domain(
    pending_id: str,
    _admin: str = Depends(require_admin),
    service: PendingDomainService = Depends(get_pending_service),
) -> PendingDomainResponse:
    return PendingDomainResponse.from_record(service.get(pending_id))


@router.put(
    "/pending-domains/{pending_id}",
    response_model=PendingDomainResponse,
    response_model_by_alias=True,
    responses={
        401: {"description": "Invalid admin credentials"},
        404: {"model": ErrorResponse, "description": "Pending domain not found"},
        409: {
            "model": ErrorResponse,
            "description": "Already resolved with another status, or a retry is running",
        },
    },
    summary="Resolve a pending domain",
    description="Mark a pending domain registered or failed and update the originating order.",
)
def resolve_pending_domain(
    pending_id: str,
    request_data: ResolvePendingRequest,
    admin: str = Depends(require_admin),
    service: PendingDomainService = Depends(get_pending_service),
) -> PendingDomainResponse:
    logger.info(
        "Admin %s resolving pending domain %s as %s", admin, pending_id, request_data.status
    )
    record = service.resolve(
        pending_id,
        PendingStatus(request_data.status),
        reason=request_data.reason,
        admin_notes=request_data.admin_notes,
        registrar_order_id=request_data.registrar_order_id,
    )
    return PendingDomainResponse.from_record(record)


@router.post(
    "/pending-domains/{pending_id}/register",
    response_model=PendingDomainResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": ErrorResponse, "description": "Domain is not in pending status"},
        401: {"description": "Invalid admin credentials"},
        404: {"model": ErrorResponse, "description": "Pending domain not found"},
        409: {
            "model": ErrorResponse,
            "description": "Record changed during the retry; the result was not recorded",
        },
    },
    summary="Retry registration of a pending domain",
    description="Attempt registration again. The returned status tells whether it succeeded.",
)
def retry_pending_domain(
    pending_id: str,
    admin: str = Depends(require_admin),
    service: PendingDomainService = Depends(get_pending_service),
) -> PendingDomainResponse:
    logger.info("Admin %s retrying registration of pending domain %s", admin, pending_id)
    return PendingDomainResponse.from_record(service.retry_registration(pending_id))


@router.post(
    "/webhooks/gateway",
    response_model=WebhookResponse,
    responses={400: {"description": "Missing or invalid signature, or unreadable payload"}},
    summary="Payment gateway webhook",
)
async def gateway_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    settings: Settings = Depends(get_settings),
    handler: GatewayEventHandler = Depends(get_event_handler),
) -> WebhookResponse:
    """Receive a signed gateway event. The signature covers the raw body."""
    body = await request.body()
    signature = x_razorpay_signature or ""
    if not verify_webhook_signature(body, signature, settings.gateway_webhook_secret):
        logger.warning("Rejected gateway webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        payload = json.loads(body)
        event = payload["event"]
    except (ValueError, KeyError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        ) from None

    charge_id = _charge_id(payload)
    action = await run_in_threadpool(handler.handle, event, charge_id)
    return WebhookResponse(action=action.value)


def _charge_id(payload: dict) -> str | None:
    try:
        return payload["payload"]["payment"]["entity"]["id"]
    except (KeyError, TypeError):
        return None
