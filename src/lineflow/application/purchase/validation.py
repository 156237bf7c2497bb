"""Validação do checkout antes da cotação.

Coleta todas as violações de uma vez; nunca para na primeira.
"""

from __future__ import annotations

import re

from lineflow.application.purchase.models import CheckoutPayload

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# (atributo, nome exibido na mensagem)
REQUIRED_ADDRESS_FIELDS: tuple[tuple[str, str], ...] = (
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("street", "street"),
    ("city", "city"),
    ("state", "state"),
    ("zip_code", "zipCode"),
    ("phone", "phone"),
    ("email", "email"),
)


def validate_checkout(payload: CheckoutPayload | None) -> list[str]:
    """Retorna a lista de violações (vazia = checkout válido)."""
    if payload is None:
        return ["Checkout data is required"]

    errors: list[str] = []

    address = payload.shipping_address
    if address is None:
        errors.append("Shipping address is required")
    else:
        for attr, label in REQUIRED_ADDRESS_FIELDS:
            value = getattr(address, attr)
            if not value or not value.strip():
                errors.append(f"Shipping address missing required field: {label}")
        if address.email and address.email.strip():
            if not EMAIL_PATTERN.match(address.email.strip()):
                errors.append("Invalid email format")

    cart = payload.cart
    if cart is None:
        errors.append("Cart is required")
    elif not cart.lines:
        errors.append("Cart must have at least one line")
    else:
        for index, line in enumerate(cart.lines, start=1):
            if line.plan is None:
                errors.append(f"Line {index} is missing a plan")
            elif not (line.plan.id or line.plan.unique_identifier or line.plan.name):
                errors.append(f"Line {index} plan is missing ID, uniqueIdentifier, or name")
            if line.sim is None:
                errors.append(f"Line {index} is missing SIM type")
            if line.device is not None:
                errors.append(
                    f"Line {index} has a device - plan-only purchase does not allow devices"
                )

    return errors
