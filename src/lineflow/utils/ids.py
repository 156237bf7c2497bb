"""Geradores de identificadores."""

from __future__ import annotations

import secrets
import string
import time

_ACCOUNT_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def new_client_account_id(now_ms: int | None = None) -> str:
    """Gera o clientAccountId de uma tentativa de checkout.

    Formato: client_{epoch_ms}_{8 caracteres [a-z0-9]}. Usado como chave de
    idempotência entre quote e purchase; nunca reaproveitado entre tentativas.
    """

    epoch_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ACCOUNT_SUFFIX_ALPHABET) for _ in range(8))
    return f"client_{epoch_ms}_{suffix}"
