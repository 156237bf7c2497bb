"""Normalização do checkout para o formato da API de compra da operadora.

Tabelas de normalização são dados de lookup simples. Nada aqui loga
endereço, e-mail ou telefone.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from lineflow.application.purchase.models import CheckoutAddress, CheckoutPayload
from lineflow.domain.cart import CartLine
from lineflow.domain.enums import SimType
from lineflow.observability.logging import get_logger, mask_id

if TYPE_CHECKING:
    from lineflow.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

MAX_FIELD_LENGTH = 500
DEFAULT_COUNTRY = "USA"
DEFAULT_PHONE_COUNTRY_CODE = "1"
DEFAULT_RESIDENTIAL = "true"

US_STATE_CODES: dict[str, str] = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY", "DISTRICT OF COLUMBIA": "DC",
}  # fmt: skip

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_NON_DIGITS = re.compile(r"\D")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATA_AMOUNT_PARENS = re.compile(r"\([\d.]+\s*[GMK]?B\)", re.IGNORECASE)
_DATA_AMOUNT_BARE = re.compile(r"\s*[\d.]+\s*[GMK]?B", re.IGNORECASE)
_SPACES = re.compile(r"\s+")


# ----------------------------------------------------------------------
# Normalizadores
# ----------------------------------------------------------------------


def sanitize_string(value: str | None) -> str:
    """Remove caracteres de controle e limita o tamanho."""
    if not value or not isinstance(value, str):
        return ""
    return _CONTROL_CHARS.sub("", value.strip())[:MAX_FIELD_LENGTH]


def extract_country_code(phone: str | None) -> str:
    """Código do país do telefone; apenas EUA são atendidos."""
    return DEFAULT_PHONE_COUNTRY_CODE


def extract_phone_number(phone: str | None) -> str:
    """Telefone com 10 dígitos, sem o código do país."""
    if not phone or not isinstance(phone, str):
        return ""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits[-10:]


def normalize_state_code(state: str | None) -> str:
    if not state or not isinstance(state, str):
        return ""
    normalized = state.strip().upper()
    if len(normalized) == 2:
        return normalized
    return US_STATE_CODES.get(normalized, normalized)


def normalize_zip_code(zip_code: str | None) -> str:
    """Primeiros 5 dígitos; CEPs curtos são completados com zeros à esquerda."""
    if not zip_code or not isinstance(zip_code, str):
        return ""
    digits = _NON_DIGITS.sub("", zip_code)
    return digits[:5] if len(digits) >= 5 else digits.zfill(5)


def validate_and_sanitize_email(email: str | None) -> str:
    """E-mail em minúsculas.

    Raises:
        ValueError: e-mail ausente ou com formato inválido
    """
    if not email or not isinstance(email, str):
        raise ValueError("Email is required")
    trimmed = email.strip().lower()
    if not _EMAIL_PATTERN.match(trimmed):
        raise ValueError("Invalid email format")
    return trimmed


def normalize_sim_type(sim_type: str | None) -> str:
    """ESIM permanece; qualquer outro valor (PSIM, PHYSICAL, vazio) vira PHYSICAL."""
    if sim_type and str(sim_type).strip().upper() == SimType.ESIM:
        return SimType.ESIM.value
    return SimType.PHYSICAL.value


def normalize_country(country: str | None) -> str:
    if not country or not isinstance(country, str):
        return DEFAULT_COUNTRY
    normalized = country.strip().upper()
    if normalized in ("US", "USA"):
        return DEFAULT_COUNTRY
    return normalized


def strip_data_amount(plan_name: str | None) -> str | None:
    """Remove anotação de franquia: "Unlimited Plus (50GB)" → "Unlimited Plus"."""
    if not plan_name:
        return plan_name
    cleaned = _DATA_AMOUNT_PARENS.sub("", plan_name)
    cleaned = _DATA_AMOUNT_BARE.sub("", cleaned)
    return _SPACES.sub(" ", cleaned).strip()


# ----------------------------------------------------------------------
# Montagem do request
# ----------------------------------------------------------------------


def _build_address(address: CheckoutAddress, address_type: str) -> dict[str, Any]:
    return {
        "address1": sanitize_string(address.street),
        "address2": sanitize_string(address.address2),
        "city": sanitize_string(address.city),
        "state": normalize_state_code(address.state),
        "zip": normalize_zip_code(address.zip_code),
        "country": normalize_country(address.country or "US"),
        "residential": address.residential or DEFAULT_RESIDENTIAL,
        "type": address_type,
    }


def build_addresses(
    shipping: CheckoutAddress, billing: CheckoutAddress | None = None
) -> list[dict[str, Any]]:
    """[billing, shipping]; billing usa o endereço de entrega quando ausente."""
    return [
        _build_address(billing or shipping, "billing"),
        _build_address(shipping, "shipping"),
    ]


def build_lines(cart_lines: list[CartLine], shipping: CheckoutAddress) -> list[dict[str, Any]]:
    """Linhas do request; linhas secundárias recebem "{nome} {n}" como firstName.

    A API exige o nome do plano (displayName) como planId.

    Raises:
        ValueError: linha sem plano, sem nome de plano ou sem SIM
    """
    base_first_name = sanitize_string(shipping.first_name)
    last_name = sanitize_string(shipping.last_name)
    lines: list[dict[str, Any]] = []

    for index, line in enumerate(cart_lines):
        number = index + 1
        if line.plan is None:
            raise ValueError(f"Line {number} is missing a plan")
        raw_plan_id = line.plan.display_name or line.plan.display_name_web or line.plan.name
        if not raw_plan_id:
            raise ValueError(f"Line {number} plan is missing displayName, displayNameWeb, or name")
        if line.sim is None:
            raise ValueError(f"Line {number} is missing SIM type")

        first_name = base_first_name if index == 0 else f"{base_first_name} {number}".strip()
        lines.append(
            {
                "firstName": first_name,
                "lastName": last_name,
                "planId": strip_data_amount(raw_plan_id),
                "isPrimary": index == 0,
                "simType": normalize_sim_type(line.sim),
            }
        )
    return lines


def build_purchase_request(
    payload: CheckoutPayload,
    settings: Settings,
    client_account_id: str,
    collection: float = 0,
) -> dict[str, Any]:
    """Request de quote (collection 0) ou purchase (collection = total da cotação).

    Raises:
        ValueError: checkout incompleto (deve ter passado por validate_checkout)
    """
    shipping = payload.shipping_address
    if shipping is None:
        raise ValueError("Shipping address is required")
    if payload.cart is None or not payload.cart.lines:
        raise ValueError("Cart with lines is required")

    lines = build_lines(payload.cart.lines, shipping)
    all_esim = all(line["simType"] == SimType.ESIM for line in lines)

    request = {
        "accountInfo": {
            "firstName": sanitize_string(shipping.first_name),
            "lastName": sanitize_string(shipping.last_name),
            "billingPhoneCountryCode": extract_country_code(shipping.phone),
            "billingPhoneNumber": extract_phone_number(shipping.phone),
            "addresses": build_addresses(shipping, payload.billing_address),
            "email": validate_and_sanitize_email(shipping.email),
            # Sem envio físico quando todas as linhas são eSIM
            "shipmentType": None if all_esim else settings.purchase_shipment_type,
            "clientAccountId": client_account_id,
            "payment": {
                "paymentType": settings.purchase_payment_type,
                "collection": collection or 0,
            },
        },
        "lines": lines,
        "meta": {
            "acquisitionSrc": settings.purchase_acquisition_source,
            "agentUniqueId": settings.effective_agent_id,
        },
        "redirectUrl": settings.purchase_redirect_url,
    }
    logger.debug(
        "Request de compra montado",
        extra={
            "client_account_id": mask_id(client_account_id),
            "line_count": len(lines),
            "collection": collection,
            "all_esim": all_esim,
        },
    )
    return request


# ----------------------------------------------------------------------
# Leitura das respostas
# ----------------------------------------------------------------------


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def extract_transaction_id(response: dict[str, Any]) -> str | None:
    return _as_dict(response.get("data")).get("transactionId") or response.get("transactionId")


def extract_payment_url(response: dict[str, Any]) -> tuple[str | None, str | None]:
    """(url, expiração) seguindo a ordem de fallback da operadora.

    data.link.url vale para qualquer link.type (inclusive PENDING).
    """
    data = _as_dict(response.get("data"))
    link = _as_dict(data.get("link"))
    if link.get("url"):
        return link["url"], link.get("expireDate")
    if data.get("paymentUrl"):
        return data["paymentUrl"], data.get("paymentUrlExpiry")
    if data.get("url"):
        return data["url"], data.get("expireDate") or data.get("expiryDate")
    top_link = _as_dict(response.get("link"))
    if top_link.get("url"):
        return top_link["url"], top_link.get("expireDate")
    if response.get("paymentUrl"):
        return response["paymentUrl"], response.get("paymentUrlExpiry")
    return None, None


def email_already_registered_message(response_body: Any, email: str | None) -> str | None:
    """Mensagem amigável quando a operadora recusa o e-mail por já existir."""
    meta = _as_dict(_as_dict(response_body).get("meta"))
    email_error = meta.get("Email")
    if not isinstance(email_error, str) or "already exist" not in email_error.lower():
        return None
    return (
        f"Email address {email} is already registered. Please use a different email "
        "address or sign in with your existing account."
    )


def carrier_error_message(response_body: Any, fallback: str) -> str:
    """message da resposta de erro da operadora, quando houver."""
    message = _as_dict(response_body).get("message")
    return message if isinstance(message, str) and message else fallback
