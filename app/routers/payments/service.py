"""Payments service layer: registration charges, webhooks, status lookups."""

import logging
from typing import Optional
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError

import config

from app.services.allocator_service import allocate_queue_position
from app.services.change_feed import publish_rows
from app.services.midtrans_service import (
    build_charge_payload,
    generate_order_id,
    parse_payment_descriptor,
    resolve_payment_method,
    verify_notification_signature,
)
from app.services.orphan_service import record_orphan_payment
from app.services.reconciliation_service import (
    apply_gateway_status,
    apply_payment_status,
    get_entry_by_order_id,
    map_gateway_status,
)
from core.errors import (
    AuthenticityError,
    GatewayError,
    MabarError,
    NotFoundError,
    ValidationError,
)
from core.ports.feed import ChangeFeedPort
from core.ports.gateway import PaymentGatewayPort
from core.schemas import CustomFieldConfig, EntryCustomData, GatewayStatusRecord, RoleConfig

from . import repository as payments_repository
from .schemas import (
    CreatePaymentResponse,
    MidtransNotification,
    PaymentDescriptor,
    PaymentStatusResponse,
    WebhookAck,
)

logger = logging.getLogger(__name__)

TERMINAL_PAYMENT_STATUSES = ("completed", "failed", "refunded")


def validate_registration(settings, request) -> None:
    """Reject a registration before any gateway call. Raises ValidationError."""
    if settings is None:
        raise ValidationError("Mabar queue not found")
    if not settings.is_active:
        raise ValidationError("Mabar queue is not accepting registrations")
    if request.streamer_id and request.streamer_id != settings.streamer_id:
        raise ValidationError("Streamer does not own this queue")

    roles = [RoleConfig.model_validate(r) for r in (settings.roles or [])]
    if roles:
        if not request.selected_role:
            raise ValidationError("A role must be selected")
        if request.selected_role not in {r.id for r in roles}:
            raise ValidationError(f"Unknown role: {request.selected_role}")

    for raw in settings.custom_fields or []:
        field = CustomFieldConfig.model_validate(raw)
        value = (request.custom_fields.get(field.id) or "").strip()
        if field.required and not value:
            raise ValidationError(f"{field.label} is required")
        if value and field.type == "select" and field.options and value not in field.options:
            raise ValidationError(f"Invalid option for {field.label}")
        if value and field.type == "number":
            try:
                float(value)
            except ValueError:
                raise ValidationError(f"{field.label} must be a number")

    if request.amount != settings.price_per_slot:
        raise ValidationError(
            f"Amount {request.amount} does not match the slot price {settings.price_per_slot}"
        )


async def create_payment(
    db, *, request, gateway: PaymentGatewayPort, feed: ChangeFeedPort
) -> CreatePaymentResponse:
    settings = await payments_repository.get_namespace_settings(
        db, namespace_id=request.namespace_id
    )
    validate_registration(settings, request)
    namespace_id = settings.id
    streamer_id = settings.streamer_id
    currency = settings.currency or "IDR"
    price = settings.price_per_slot

    active = await payments_repository.count_active_entries(db, namespace_id=namespace_id)
    if active >= settings.max_queue_size:
        raise ValidationError("Queue is full")

    if await payments_repository.is_donor_blocked(
        db, streamer_id=streamer_id, game_id=request.game_id.strip()
    ):
        raise ValidationError("This player cannot join the queue")

    method = resolve_payment_method(request.payment_method)
    order_id = generate_order_id()
    payload = build_charge_payload(
        order_id=order_id,
        amount=price,
        method=method,
        player_name=request.player_name,
        email=request.email,
        phone=request.phone,
    )

    # Single attempt: a retry here could charge twice. Failures surface as GatewayError.
    gateway_response = await gateway.charge(payload)
    descriptor = parse_payment_descriptor(gateway_response, method)

    custom_data = EntryCustomData(
        gateway_transaction_id=gateway_response.get("transaction_id"),
        gateway_order_id=order_id,
        gateway_status=GatewayStatusRecord(
            transaction_status=gateway_response.get("transaction_status"),
            fraud_status=gateway_response.get("fraud_status"),
            payment_type=gateway_response.get("payment_type") or method.payment_type,
            status_code=gateway_response.get("status_code"),
            source="create",
        ),
        fields={k: v for k, v in request.custom_fields.items() if v},
    )

    entry = None
    try:
        position = await allocate_queue_position(db, namespace_id)
        entry = payments_repository.build_queue_entry(
            settings=settings,
            request=request,
            order_id=order_id,
            queue_position=position,
            custom_data=custom_data.to_column(),
        )
        db.add(entry)
        await db.commit()
    except Exception as e:
        await db.rollback()
        entry = None
        logger.error(
            "ORPHAN_PAYMENT | order_id=%s | namespace=%s | game_id=%s | error=%s: %s",
            order_id, namespace_id, request.game_id, type(e).__name__, e,
            exc_info=True,
        )
        # The player has a live charge with no entry; the reconciler re-creates
        # the entry from this record once the gateway reports the order paid
        await record_orphan_payment(
            db,
            order_id=order_id,
            namespace_id=namespace_id,
            streamer_id=streamer_id,
            amount=price,
            currency=currency,
            payment_method=request.payment_method,
            registration=payments_repository.registration_snapshot(request),
            custom_data=custom_data.to_column(),
            error=f"{type(e).__name__}: {e}",
        )

    if entry is not None:
        logger.info(
            "QUEUE_ENTRY_CREATED | order_id=%s | namespace=%s | position=%s | method=%s",
            order_id, namespace_id, entry.queue_position, method.token,
        )
        if request.desired_position and request.desired_position != entry.queue_position:
            logger.debug(
                "Desired position %s for %s replaced by %s",
                request.desired_position, order_id, entry.queue_position,
            )
        await publish_rows(feed, "INSERT", entry)

    return CreatePaymentResponse(
        order_id=order_id,
        transaction_status=gateway_response.get("transaction_status"),
        payment=PaymentDescriptor(
            kind=descriptor["kind"],
            qr_code_url=descriptor["qr_code_url"],
            payment_url=descriptor["payment_url"],
            va_number=descriptor["va_number"],
            bank=descriptor["bank"],
            expiry_time=descriptor["expiry_time"],
        ),
        queue_entry_id=entry.id if entry is not None else None,
        queue_position=entry.queue_position if entry is not None else None,
    )


async def process_midtrans_webhook(db, *, payload: dict, feed) -> WebhookAck:
    """
    Verify and apply a Midtrans notification.

    Always returns an acknowledgement; the endpoint answers 200 whatever
    happens so Midtrans does not retry in a loop. The poller covers anything
    dropped here.
    """
    order_id = str(payload.get("order_id") or "")
    logger.info(
        "WEBHOOK_RECEIVED | order_id=%s | status=%s | fraud=%s | type=%s",
        order_id,
        payload.get("transaction_status"),
        payload.get("fraud_status"),
        payload.get("payment_type"),
    )

    try:
        notification = MidtransNotification.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning("INVALID_NOTIFICATION | order_id=%s | errors=%s", order_id, e.error_count())
        return WebhookAck(status="invalid_payload", order_id=order_id or None)

    try:
        if not order_id:
            raise ValidationError("Notification has no order_id")
        # The signature covers the fields exactly as Midtrans sent them
        if not verify_notification_signature(payload):
            raise AuthenticityError(f"Signature mismatch for {order_id}")

        result = await apply_gateway_status(
            db,
            order_id=order_id,
            transaction_status=notification.transaction_status,
            fraud_status=notification.fraud_status,
            payment_type=notification.payment_type,
            gross_amount=notification.gross_amount,
            status_code=notification.status_code,
            source="webhook",
            feed=feed,
        )
        return WebhookAck(status=result.outcome, order_id=order_id)
    except AuthenticityError as e:
        logger.warning("INVALID_SIGNATURE | order_id=%s | %s", order_id, e.message)
        return WebhookAck(status="invalid_signature", order_id=order_id)
    except MabarError as e:
        logger.warning("WEBHOOK_REJECTED | order_id=%s | %s: %s", order_id, e.code, e.message)
        return WebhookAck(status=e.code, order_id=order_id or None)
    except Exception as e:
        logger.error(
            "WEBHOOK_ERROR | order_id=%s | %s: %s", order_id, type(e).__name__, e, exc_info=True
        )
        return WebhookAck(status="error", order_id=order_id or None)


def _status_from_entry(entry, *, source: str, transaction_status: Optional[str] = None):
    if transaction_status is None:
        gateway_status = EntryCustomData.from_column(entry.custom_data).gateway_status
        transaction_status = gateway_status.transaction_status if gateway_status else None
    return PaymentStatusResponse(
        order_id=entry.payment_id,
        source=source,
        payment_status=entry.payment_status,
        entry_status=entry.entry_status,
        transaction_status=transaction_status,
        queue_entry_id=entry.id,
        queue_position=entry.queue_position,
        paid_at=entry.paid_at,
    )


async def get_payment_status(
    db, *, order_id: str, gateway: PaymentGatewayPort, feed: ChangeFeedPort
) -> PaymentStatusResponse:
    entry = await get_entry_by_order_id(db, order_id)
    if entry is not None and entry.payment_status in TERMINAL_PAYMENT_STATUSES:
        return _status_from_entry(entry, source="local")

    try:
        data = await gateway.get_status(order_id)
    except GatewayError as e:
        if entry is None:
            raise
        logger.warning("Live status lookup for %s failed, using local state: %s", order_id, e.message)
        return _status_from_entry(entry, source="local_fallback")

    result = await apply_gateway_status(
        db,
        order_id=order_id,
        transaction_status=data.get("transaction_status"),
        fraud_status=data.get("fraud_status"),
        payment_type=data.get("payment_type"),
        gross_amount=data.get("gross_amount"),
        status_code=data.get("status_code"),
        source="status_query",
        feed=feed,
    )
    if result.entry is not None:
        return _status_from_entry(
            result.entry, source="gateway", transaction_status=data.get("transaction_status")
        )

    if result.outcome == "unknown_order":
        logger.warning("ORPHAN_PAYMENT_LOOKUP | order_id=%s | status=%s", order_id, data.get("transaction_status"))
    return PaymentStatusResponse(
        order_id=order_id,
        source="gateway",
        payment_status=map_gateway_status(data.get("transaction_status"), data.get("fraud_status")),
        transaction_status=data.get("transaction_status"),
    )


async def set_payment_status_manually(db, *, order_id: str, request, streamer_id: str, feed):
    entry = await get_entry_by_order_id(db, order_id)
    if entry is None or entry.streamer_id != streamer_id:
        raise NotFoundError("Payment not found")

    logger.info(
        "MANUAL_PAYMENT_STATUS | order_id=%s | streamer=%s | %s -> %s | reason=%s",
        order_id, streamer_id, entry.payment_status, request.new_status, request.reason,
    )
    result = await apply_payment_status(
        db,
        order_id=order_id,
        new_status=request.new_status,
        record=GatewayStatusRecord(
            transaction_status=f"manual_{request.new_status}",
            payment_type=entry.payment_method,
            source="admin",
        ),
        source="admin",
        feed=feed,
    )
    return result.as_dict()


def callback_redirect_url(order_id: Optional[str], transaction_status: Optional[str]) -> str:
    status = (transaction_status or "").lower()
    if status in ("settlement", "capture"):
        page = "success"
    elif status == "pending":
        page = "pending"
    else:
        page = "failed"
    query = urlencode({"order_id": order_id}) if order_id else ""
    return f"{config.APP_URL}/payment/{page}" + (f"?{query}" if query else "")
