"""
Midtrans Service - Core API client, payment method mapping and signatures
"""
import base64
import hashlib
import hmac
import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

import config
from core.errors import GatewayError

logger = logging.getLogger(__name__)

MIDTRANS_SANDBOX_URL = "https://api.sandbox.midtrans.com"
MIDTRANS_PRODUCTION_URL = "https://api.midtrans.com"
QR_IMAGE_URL = "https://api.qrserver.com/v1/create-qr-code/?size=200x200&data="

# Midtrans reports the outcome in the body status_code, not only the HTTP status
CHARGE_OK_CODES = ("200", "201")
# 202 = denied, 407 = expired: valid answers to a status lookup
STATUS_OK_CODES = ("200", "201", "202", "407")

if not config.MIDTRANS_SERVER_KEY:
    logger.warning("MIDTRANS_SERVER_KEY not set - charges and webhook verification will fail")


@dataclass(frozen=True)
class PaymentMethod:
    token: str
    payment_type: str
    family: str  # qr, ewallet, bank
    bank: Optional[str] = None


PAYMENT_METHODS = {
    "qris": PaymentMethod("qris", "qris", "qr"),
    "dana": PaymentMethod("dana", "qris", "qr"),
    "ovo": PaymentMethod("ovo", "qris", "qr"),
    "gopay": PaymentMethod("gopay", "gopay", "ewallet"),
    "shopeepay": PaymentMethod("shopeepay", "shopeepay", "ewallet"),
    "bca_va": PaymentMethod("bca_va", "bank_transfer", "bank", "bca"),
    "bni_va": PaymentMethod("bni_va", "bank_transfer", "bank", "bni"),
    "bri_va": PaymentMethod("bri_va", "bank_transfer", "bank", "bri"),
    "cimb_va": PaymentMethod("cimb_va", "bank_transfer", "bank", "cimb"),
    "mandiri_va": PaymentMethod("mandiri_va", "echannel", "bank", "mandiri"),
    "permata_va": PaymentMethod("permata_va", "permata", "bank", "permata"),
}

DEFAULT_PAYMENT_METHOD = PAYMENT_METHODS["qris"]


def resolve_payment_method(token: str) -> PaymentMethod:
    method = PAYMENT_METHODS.get((token or "").strip().lower())
    if method is None:
        logger.warning("Unknown payment method %r, falling back to QRIS", token)
        return DEFAULT_PAYMENT_METHOD
    return method


def generate_order_id(prefix: Optional[str] = None) -> str:
    timestamp_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"{prefix or config.ORDER_ID_PREFIX}-{timestamp_ms}-{suffix}"


def expiry_for(method: PaymentMethod) -> Dict[str, Any]:
    if method.family == "bank":
        return {"expiry_duration": config.BANK_EXPIRY_HOURS, "unit": "hour"}
    return {"expiry_duration": config.QR_EXPIRY_MINUTES, "unit": "minute"}


def build_charge_payload(
    *,
    order_id: str,
    amount: int,
    method: PaymentMethod,
    player_name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    callback_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a /v2/charge body for the given payment family."""
    customer_details = {"first_name": player_name}
    if email:
        customer_details["email"] = email
    if phone:
        customer_details["phone"] = phone

    payload: Dict[str, Any] = {
        "payment_type": method.payment_type,
        "transaction_details": {"order_id": order_id, "gross_amount": int(amount)},
        "customer_details": customer_details,
        "custom_expiry": expiry_for(method),
    }

    callback_url = callback_url or f"{config.APP_URL}/api/v1/payments/callback"
    if method.payment_type == "qris":
        payload["qris"] = {"acquirer": "gopay"}
    elif method.payment_type == "gopay":
        payload["gopay"] = {"enable_callback": True, "callback_url": callback_url}
    elif method.payment_type == "shopeepay":
        payload["shopeepay"] = {"callback_url": callback_url}
    elif method.payment_type == "bank_transfer":
        payload["bank_transfer"] = {"bank": method.bank}
    elif method.payment_type == "echannel":
        payload["echannel"] = {"bill_info1": "Payment for", "bill_info2": "Mabar Queue"}

    return payload


def parse_payment_descriptor(response: Dict[str, Any], method: PaymentMethod) -> Dict[str, Any]:
    """
    Turn a charge response into what the player needs to pay.

    Returns a dict with `kind` (qr, deeplink, virtual_account) and whichever of
    qr_code_url, payment_url, va_number, bank apply, plus expiry_time.
    """
    descriptor: Dict[str, Any] = {
        "kind": "qr",
        "order_id": response.get("order_id"),
        "expiry_time": response.get("expiry_time"),
        "qr_code_url": None,
        "payment_url": None,
        "va_number": None,
        "bank": method.bank,
    }

    qr_string = response.get("qr_string")
    if qr_string:
        descriptor["qr_code_url"] = QR_IMAGE_URL + quote(qr_string, safe="")

    actions = {a.get("name"): a.get("url") for a in response.get("actions") or []}
    descriptor["payment_url"] = actions.get("deeplink-redirect") or actions.get("generate-qr-code")
    if not descriptor["qr_code_url"]:
        descriptor["qr_code_url"] = actions.get("generate-qr-code")

    va_numbers = response.get("va_numbers") or []
    if va_numbers:
        descriptor["va_number"] = va_numbers[0].get("va_number")
        descriptor["bank"] = va_numbers[0].get("bank") or method.bank
    if response.get("permata_va_number"):
        descriptor["va_number"] = response["permata_va_number"]
    if response.get("bill_key") and response.get("biller_code"):
        descriptor["va_number"] = f"{response['biller_code']}{response['bill_key']}"

    if descriptor["va_number"]:
        descriptor["kind"] = "virtual_account"
    elif method.family == "ewallet" and descriptor["payment_url"]:
        descriptor["kind"] = "deeplink"
    return descriptor


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_notification_signature(notification: Dict[str, Any], server_key: Optional[str] = None) -> bool:
    server_key = config.MIDTRANS_SERVER_KEY if server_key is None else server_key
    if not server_key:
        logger.error("Cannot verify notification signature: MIDTRANS_SERVER_KEY not set")
        return False
    provided = str(notification.get("signature_key") or "")
    expected = compute_signature(
        str(notification.get("order_id") or ""),
        str(notification.get("status_code") or ""),
        str(notification.get("gross_amount") or ""),
        server_key,
    )
    return hmac.compare_digest(expected, provided.lower())


class MidtransGateway:
    """Midtrans Core API over httpx. Implements PaymentGatewayPort."""

    def __init__(
        self,
        server_key: Optional[str] = None,
        is_production: Optional[bool] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_key = config.MIDTRANS_SERVER_KEY if server_key is None else server_key
        production = config.MIDTRANS_IS_PRODUCTION if is_production is None else is_production
        self.base_url = MIDTRANS_PRODUCTION_URL if production else MIDTRANS_SANDBOX_URL
        self.timeout = timeout or config.MIDTRANS_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        token = base64.b64encode(f"{self.server_key}:".encode("utf-8")).decode("ascii")
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Basic {token}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        ok_codes,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self.server_key:
            raise GatewayError("Midtrans server key not configured")

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=payload, headers=self._headers())
                data = response.json()
        except httpx.TimeoutException:
            raise GatewayError("Timeout connecting to Midtrans")
        except httpx.RequestError as e:
            raise GatewayError(f"Failed to connect to Midtrans: {str(e)}")
        except ValueError:
            raise GatewayError("Midtrans returned a non-JSON response")

        status_code = str(data.get("status_code") or response.status_code)
        if status_code not in ok_codes:
            message = data.get("status_message") or "Midtrans request failed"
            logger.warning(
                "Midtrans %s %s failed: http=%s status_code=%s message=%s",
                method, path, response.status_code, status_code, message,
            )
            raise GatewayError(message, gateway_status_code=status_code)
        return data

    async def charge(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        order_id = payload.get("transaction_details", {}).get("order_id")
        logger.info("Creating Midtrans %s charge for %s", payload.get("payment_type"), order_id)
        return await self._request("POST", "/v2/charge", CHARGE_OK_CODES, payload)

    async def get_status(self, order_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/v2/{quote(order_id, safe='')}/status", STATUS_OK_CODES
        )
