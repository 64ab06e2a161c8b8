"""
Midtrans client: payload shapes, descriptor parsing, signature checks, HTTP error mapping.
"""

import hashlib
import json
import re

import httpx
import pytest

from app.services.midtrans_service import (
    MidtransGateway,
    build_charge_payload,
    compute_signature,
    generate_order_id,
    parse_payment_descriptor,
    resolve_payment_method,
    verify_notification_signature,
)
from core.errors import GatewayError

SERVER_KEY = "SB-Mid-server-test-key"


def test_order_id_format():
    order_id = generate_order_id()
    assert re.fullmatch(r"MABAR-\d{13}-[A-Z0-9]{6}", order_id)
    assert generate_order_id() != order_id


def test_unknown_method_falls_back_to_qris():
    assert resolve_payment_method("bitcoin").payment_type == "qris"
    assert resolve_payment_method("DANA").payment_type == "qris"
    assert resolve_payment_method("mandiri_va").payment_type == "echannel"


def test_qris_payload():
    payload = build_charge_payload(
        order_id="MABAR-1-AAAAAA",
        amount=50000,
        method=resolve_payment_method("qris"),
        player_name="Budi",
        email="budi@example.com",
    )
    assert payload["payment_type"] == "qris"
    assert payload["qris"] == {"acquirer": "gopay"}
    assert payload["transaction_details"] == {"order_id": "MABAR-1-AAAAAA", "gross_amount": 50000}
    assert payload["customer_details"] == {"first_name": "Budi", "email": "budi@example.com"}
    assert payload["custom_expiry"] == {"expiry_duration": 15, "unit": "minute"}


def test_gopay_payload_has_callback():
    payload = build_charge_payload(
        order_id="MABAR-1-AAAAAA",
        amount=50000,
        method=resolve_payment_method("gopay"),
        player_name="Budi",
        callback_url="https://example.com/cb",
    )
    assert payload["gopay"] == {"enable_callback": True, "callback_url": "https://example.com/cb"}


def test_bank_payloads():
    bni = build_charge_payload(
        order_id="O", amount=1, method=resolve_payment_method("bni_va"), player_name="Budi"
    )
    mandiri = build_charge_payload(
        order_id="O", amount=1, method=resolve_payment_method("mandiri_va"), player_name="Budi"
    )
    assert bni["bank_transfer"] == {"bank": "bni"}
    assert mandiri["payment_type"] == "echannel"
    assert "bill_info1" in mandiri["echannel"]


def test_descriptor_for_ewallet_deeplink():
    response = {
        "order_id": "O",
        "actions": [
            {"name": "generate-qr-code", "url": "https://api.midtrans.com/v2/gopay/qr"},
            {"name": "deeplink-redirect", "url": "gojek://gopay/merchanttransfer"},
        ],
    }
    descriptor = parse_payment_descriptor(response, resolve_payment_method("gopay"))
    assert descriptor["kind"] == "deeplink"
    assert descriptor["payment_url"] == "gojek://gopay/merchanttransfer"
    assert descriptor["qr_code_url"] == "https://api.midtrans.com/v2/gopay/qr"


def test_descriptor_for_mandiri_bill():
    response = {"order_id": "O", "bill_key": "990000000260", "biller_code": "70012"}
    descriptor = parse_payment_descriptor(response, resolve_payment_method("mandiri_va"))
    assert descriptor["kind"] == "virtual_account"
    assert descriptor["va_number"] == "70012990000000260"
    assert descriptor["bank"] == "mandiri"


def test_descriptor_for_permata():
    response = {"order_id": "O", "permata_va_number": "8562000000000001"}
    descriptor = parse_payment_descriptor(response, resolve_payment_method("permata_va"))
    assert descriptor["kind"] == "virtual_account"
    assert descriptor["va_number"] == "8562000000000001"


def test_signature_matches_midtrans_formula():
    raw = "MABAR-1-AAAAAA" + "200" + "50000.00" + SERVER_KEY
    assert compute_signature("MABAR-1-AAAAAA", "200", "50000.00", SERVER_KEY) == hashlib.sha512(
        raw.encode()
    ).hexdigest()


def test_verify_notification_signature():
    notification = {
        "order_id": "MABAR-1-AAAAAA",
        "status_code": "200",
        "gross_amount": "50000.00",
        "signature_key": compute_signature("MABAR-1-AAAAAA", "200", "50000.00", SERVER_KEY),
    }
    assert verify_notification_signature(notification, SERVER_KEY) is True
    assert verify_notification_signature({**notification, "gross_amount": "1.00"}, SERVER_KEY) is False
    assert verify_notification_signature({**notification, "signature_key": ""}, SERVER_KEY) is False
    assert verify_notification_signature(notification, "") is False


def gateway_with(handler):
    return MidtransGateway(
        server_key=SERVER_KEY, is_production=False, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_charge_sends_basic_auth_to_sandbox():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status_code": "201", "transaction_status": "pending"})

    data = await gateway_with(handler).charge(
        {"payment_type": "qris", "transaction_details": {"order_id": "O", "gross_amount": 1}}
    )

    assert data["transaction_status"] == "pending"
    assert seen["url"] == "https://api.sandbox.midtrans.com/v2/charge"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"]["payment_type"] == "qris"


@pytest.mark.asyncio
async def test_rejected_charge_raises_gateway_error():
    def handler(request):
        return httpx.Response(
            200, json={"status_code": "406", "status_message": "Duplicate order ID"}
        )

    with pytest.raises(GatewayError) as exc_info:
        await gateway_with(handler).charge({"transaction_details": {"order_id": "O"}})

    assert exc_info.value.gateway_status_code == "406"
    assert "Duplicate" in exc_info.value.message


@pytest.mark.asyncio
async def test_status_lookup_accepts_expired_answers():
    def handler(request):
        assert request.url.path == "/v2/MABAR-1-AAAAAA/status"
        return httpx.Response(200, json={"status_code": "407", "transaction_status": "expire"})

    data = await gateway_with(handler).get_status("MABAR-1-AAAAAA")

    assert data["transaction_status"] == "expire"


@pytest.mark.asyncio
async def test_network_errors_become_gateway_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayError):
        await gateway_with(handler).get_status("O")


@pytest.mark.asyncio
async def test_missing_server_key_fails_fast():
    gateway = MidtransGateway(server_key="", transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(GatewayError):
        await gateway.charge({})
