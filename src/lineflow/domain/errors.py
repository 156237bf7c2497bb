"""Taxonomia de erros do fluxo de compra.

- Gate e resolver de linhas nunca levantam; retornam resultado estruturado.
- O orquestrador levanta FlowError para falhas fatais, encadeando a causa tipada.
- Timeout de polling NÃO é erro: retorna resultado parcial.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lineflow.application.gate import GateResult


class InvalidArgumentError(ValueError):
    """Argumento ausente ou inválido em operação de sessão."""


class PrerequisiteError(Exception):
    """Chamada recusada pelo gate de pré-requisitos."""

    def __init__(self, gate: GateResult) -> None:
        super().__init__(gate.reason or f"Pré-requisito não atendido: {gate.gate_code}")
        self.gate = gate


class CarrierError(Exception):
    """Base para falhas do fluxo quote → purchase → status."""

    error_type = "CARRIER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class PurchaseValidationError(CarrierError):
    """Dados de checkout inválidos. Nunca retentado; lista todas as violações."""

    error_type = "VALIDATION_ERROR"

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = list(validation_errors or [])


class QuoteError(CarrierError):
    """Falha na chamada de cotação."""

    error_type = "QUOTE_ERROR"


class PurchaseError(CarrierError):
    """Falha na chamada de compra (ou compra sem transactionId)."""

    error_type = "PURCHASE_ERROR"

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.transaction_id = transaction_id


class StatusError(CarrierError):
    """Falha na consulta de status da transação."""

    error_type = "STATUS_ERROR"

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.transaction_id = transaction_id


class NotFoundError(StatusError):
    """Transação desconhecida pela operadora (404). Fatal, sem retry."""

    error_type = "NOT_FOUND"


class AuthenticationError(CarrierError):
    """Token da operadora não pôde ser obtido. Sempre propaga."""

    error_type = "AUTHENTICATION_ERROR"


class FlowError(Exception):
    """Falha do fluxo com o estado em que ocorreu.

    Mantém transaction_id e client_account_id para que uma consulta de
    status posterior retome a transação sem refazer quote/purchase.
    """

    def __init__(
        self,
        message: str,
        state: str,
        transaction_id: str | None = None,
        client_account_id: str | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.state = state
        self.transaction_id = transaction_id
        self.client_account_id = client_account_id
        self.error_type = error_type

    def to_dict(self) -> dict[str, Any]:
        """Representação serializável para a camada de API."""
        cause = self.__cause__
        return {
            "error": str(self),
            "error_type": self.error_type,
            "state": self.state,
            "transaction_id": self.transaction_id,
            "client_account_id": self.client_account_id,
            "validation_errors": getattr(cause, "validation_errors", None),
        }
