"""PurchaseOrchestrator — quote → purchase → polling de status.

Fluxo (estados em PurchaseState):
1. VALIDATING: todas as violações do checkout de uma vez
2. QUOTING: client_account_id novo por tentativa, planos enriquecidos,
   collection 0; exige data.oneTimeCharge.totalOneTimeCost
3. PURCHASING: mesmo client_account_id, collection = total da cotação
4. POLLING: até max_poll_attempts consultas; URL de pagamento conclui
5. Terminais: COMPLETED, FAILED (retornado) e POLLING_TIMEOUT (parcial)

Falhas fatais saem como FlowError encadeado à causa tipada. Nenhuma
chamada de compensação é feita; o polling nunca segura lock de sessão.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from lineflow.application.purchase.enrichment import enrich_cart_plans
from lineflow.application.purchase.helpers import (
    build_purchase_request,
    carrier_error_message,
    email_already_registered_message,
    extract_payment_url,
    extract_transaction_id,
)
from lineflow.application.purchase.models import (
    CheckoutPayload,
    PollingOptions,
    PurchaseResult,
    PurchaseTransaction,
)
from lineflow.application.purchase.validation import validate_checkout
from lineflow.config.settings import Settings, get_settings
from lineflow.domain.enums import API_STATUS_SUCCESS, OrderStatus, PaymentStatus
from lineflow.domain.errors import (
    CarrierError,
    FlowError,
    NotFoundError,
    PurchaseError,
    PurchaseValidationError,
    QuoteError,
    StatusError,
)
from lineflow.domain.protocols.plan_catalog import PlanCatalogProtocol
from lineflow.domain.purchase import PurchaseState
from lineflow.infra.carrier_client import CarrierApiClient
from lineflow.infra.http import HttpError
from lineflow.observability.logging import get_logger, mask_id
from lineflow.utils.ids import new_client_account_id

logger: logging.Logger = get_logger(__name__)

_SUCCESS_PAYMENT_STATUSES = frozenset({PaymentStatus.SUCCESS, PaymentStatus.APPROVED})


def poll_backoff(poll_interval: float, attempt: int, max_backoff: float) -> float:
    """Espera após erro transitório na tentativa `attempt` (1-based)."""
    return min(poll_interval * (2 ** max(attempt - 1, 0)), max_backoff)


def _data(response: dict[str, Any]) -> dict[str, Any]:
    data = response.get("data")
    return data if isinstance(data, dict) else {}


def status_outcome(tx: PurchaseTransaction) -> PurchaseState | None:
    """Estado terminal indicado pela última consulta (None = seguir consultando).

    Uma URL de pagamento conclui o fluxo mesmo com pagamento PENDING.
    """
    if tx.order_status == OrderStatus.DONE or tx.payment_status in _SUCCESS_PAYMENT_STATUSES:
        return PurchaseState.COMPLETED
    if tx.payment_url:
        return PurchaseState.COMPLETED
    if tx.order_status == OrderStatus.FAILED or tx.payment_status == PaymentStatus.FAILED:
        return PurchaseState.FAILED
    return None


class PurchaseOrchestrator:
    """Conduz uma transação de compra até um estado terminal."""

    def __init__(
        self,
        client: CarrierApiClient,
        catalog: PlanCatalogProtocol,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        account_id_factory: Callable[[], str] = new_client_account_id,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._sleep = sleep
        self._clock = clock
        self._account_id_factory = account_id_factory

    def default_options(self, **overrides: Any) -> PollingOptions:
        return PollingOptions.from_settings(self._settings, **overrides)

    # ------------------------------------------------------------------
    # Checkout completo
    # ------------------------------------------------------------------

    async def start_checkout(
        self,
        payload: CheckoutPayload,
        options: PollingOptions | None = None,
        on_transaction: Callable[[PurchaseTransaction], None] | None = None,
    ) -> PurchaseResult:
        """Executa validação, cotação, compra e polling.

        on_transaction recebe a transação assim que ela é criada; o objeto é
        mutado no lugar, então quem o guarda enxerga o último estado mesmo se
        a tarefa for cancelada.

        Raises:
            FlowError: falha fatal (validação, cotação, compra, 404 no polling)
        """
        options = options or self.default_options()
        tx = PurchaseTransaction()
        if on_transaction is not None:
            on_transaction(tx)

        tx.advance(PurchaseState.VALIDATING)
        violations = validate_checkout(payload)
        if violations:
            error = PurchaseValidationError("Checkout validation failed", violations)
            raise self._flow_error(tx, error) from error

        tx.advance(PurchaseState.QUOTING)
        tx.client_account_id = self._account_id_factory()
        logger.info(
            "Checkout iniciado",
            extra={
                "session_id": mask_id(payload.session_id),
                "client_account_id": mask_id(tx.client_account_id),
                "line_count": len(payload.cart.lines) if payload.cart else 0,
            },
        )
        try:
            cart = await enrich_cart_plans(payload.cart, self._catalog)  # type: ignore[arg-type]
            enriched = payload.model_copy(update={"cart": cart})
            total = await self._quote(tx, enriched)
            tx.advance(PurchaseState.QUOTED)

            tx.advance(PurchaseState.PURCHASING)
            await self._purchase(tx, enriched, total)
            tx.advance(PurchaseState.PURCHASED)
        except CarrierError as e:
            raise self._flow_error(tx, e) from e

        if options.skip_polling:
            tx.advance(PurchaseState.COMPLETED)
            logger.info(
                "Polling ignorado; compra submetida",
                extra={"transaction_id": mask_id(tx.transaction_id)},
            )
            return PurchaseResult(tx, message="Purchase submitted. Status polling was skipped.")

        tx.advance(PurchaseState.POLLING)
        try:
            await self._poll(tx, options)
        except asyncio.CancelledError:
            logger.warning(
                "Polling cancelado pela tarefa chamadora",
                extra={
                    "transaction_id": mask_id(tx.transaction_id),
                    "client_account_id": mask_id(tx.client_account_id),
                    "poll_attempts": tx.poll_attempts,
                },
            )
            raise
        except CarrierError as e:
            raise self._flow_error(tx, e) from e

        return PurchaseResult(tx)

    # ------------------------------------------------------------------
    # Reentrada por transaction_id
    # ------------------------------------------------------------------

    async def check_status(
        self, transaction_id: str, client_account_id: str | None = None
    ) -> PurchaseResult:
        """Uma consulta de status a partir apenas do transaction_id.

        Retorna COMPLETED, FAILED ou POLLING (ainda em andamento).
        """
        tx = PurchaseTransaction(transaction_id=transaction_id, client_account_id=client_account_id)
        tx.advance(PurchaseState.POLLING)
        try:
            response = await self._status(transaction_id)
        except CarrierError as e:
            raise self._flow_error(tx, e) from e

        tx.poll_attempts = 1
        tx.polled = True
        self._apply_status(tx, response)
        outcome = status_outcome(tx)
        if outcome is not None:
            tx.advance(outcome)
        if tx.state == PurchaseState.FAILED:
            tx.error = "Purchase failed"
        return PurchaseResult(tx)

    # ------------------------------------------------------------------
    # Etapas
    # ------------------------------------------------------------------

    def _build_request(
        self, tx: PurchaseTransaction, payload: CheckoutPayload, collection: float
    ) -> dict[str, Any]:
        try:
            return build_purchase_request(
                payload, self._settings, tx.client_account_id or "", collection=collection
            )
        except ValueError as e:
            raise PurchaseValidationError(str(e), [str(e)]) from e

    async def _quote(self, tx: PurchaseTransaction, payload: CheckoutPayload) -> float:
        request = self._build_request(tx, payload, collection=0)
        try:
            response = await self._client.quote(request)
        except HttpError as e:
            raise QuoteError(
                carrier_error_message(e.response_body, f"Quote request failed: {e}"),
                status_code=e.status_code,
                response_body=e.response_body,
            ) from e

        status = response.get("status")
        if status is not None and status != API_STATUS_SUCCESS:
            raise QuoteError(
                carrier_error_message(response, f"Quote failed with status {status}"),
                response_body=response,
            )

        data = _data(response)
        one_time_charge = data.get("oneTimeCharge")
        total = (
            one_time_charge.get("totalOneTimeCost") if isinstance(one_time_charge, dict) else None
        )
        if total is None:
            raise QuoteError("Quote response missing oneTimeCharge data", response_body=response)
        try:
            total = float(total)
        except (TypeError, ValueError) as e:
            raise QuoteError("Quote total is not a number", response_body=response) from e

        tx.quote_data = data
        logger.info(
            "Cotação obtida",
            extra={"client_account_id": mask_id(tx.client_account_id), "total": total},
        )
        return total

    async def _purchase(
        self, tx: PurchaseTransaction, payload: CheckoutPayload, total: float
    ) -> None:
        request = self._build_request(tx, payload, collection=total)
        try:
            response = await self._client.purchase(request)
        except HttpError as e:
            email = payload.shipping_address.email if payload.shipping_address else None
            message = email_already_registered_message(e.response_body, email)
            if message:
                logger.warning(
                    "Operadora recusou e-mail já cadastrado",
                    extra={"client_account_id": mask_id(tx.client_account_id)},
                )
            raise PurchaseError(
                message or carrier_error_message(e.response_body, f"Purchase request failed: {e}"),
                status_code=e.status_code,
                response_body=e.response_body,
            ) from e

        transaction_id = extract_transaction_id(response)
        if not transaction_id:
            raise PurchaseError(
                "Purchase response missing transactionId", response_body=response
            )
        tx.transaction_id = str(transaction_id)
        data = _data(response)
        tx.customer_id = data.get("customerId") or tx.customer_id
        logger.info(
            "Compra submetida",
            extra={
                "transaction_id": mask_id(tx.transaction_id),
                "client_account_id": mask_id(tx.client_account_id),
            },
        )

    async def _status(self, transaction_id: str) -> dict[str, Any]:
        try:
            response = await self._client.status(transaction_id)
        except HttpError as e:
            if e.status_code == 404:
                raise NotFoundError(
                    f"Transaction not found: {transaction_id}",
                    transaction_id=transaction_id,
                    status_code=404,
                    response_body=e.response_body,
                ) from e
            raise StatusError(
                f"Failed to check purchase status: {e}",
                transaction_id=transaction_id,
                status_code=e.status_code,
                response_body=e.response_body,
            ) from e

        status = response.get("status")
        if status is not None and status != API_STATUS_SUCCESS:
            raise StatusError(
                carrier_error_message(response, f"Status check failed with status {status}"),
                transaction_id=transaction_id,
                response_body=response,
            )
        return response

    def _apply_status(self, tx: PurchaseTransaction, response: dict[str, Any]) -> None:
        data = _data(response)
        tx.payment_status = data.get("paymentStatus") or tx.payment_status
        tx.order_status = data.get("status") or tx.order_status
        tx.customer_id = data.get("customerId") or tx.customer_id
        tx.support_url = data.get("supportUrl") or tx.support_url
        payment_url, expiry = extract_payment_url(response)
        if payment_url:
            tx.payment_url = payment_url
            tx.payment_url_expiry = expiry

    async def _poll(self, tx: PurchaseTransaction, options: PollingOptions) -> None:
        deadline = (
            self._clock() + options.timeout_seconds if options.timeout_seconds is not None else None
        )
        transaction_id = tx.transaction_id or ""
        last_error: StatusError | None = None

        if await self._wait(options.initial_poll_delay, options, deadline):
            self._mark_cancelled(tx)
            return

        while tx.poll_attempts < options.max_poll_attempts:
            tx.poll_attempts += 1
            tx.polled = True
            try:
                response = await self._status(transaction_id)
            except NotFoundError:
                raise
            except StatusError as e:
                last_error = e
                delay = poll_backoff(options.poll_interval, tx.poll_attempts, options.max_backoff)
                logger.warning(
                    "Erro transitório no polling de status",
                    extra={
                        "transaction_id": mask_id(transaction_id),
                        "attempt": tx.poll_attempts,
                        "status_code": e.status_code,
                        "backoff_seconds": delay,
                    },
                )
            else:
                self._apply_status(tx, response)
                outcome = status_outcome(tx)
                logger.info(
                    "Status consultado",
                    extra={
                        "transaction_id": mask_id(transaction_id),
                        "attempt": tx.poll_attempts,
                        "payment_status": tx.payment_status,
                        "order_status": tx.order_status,
                        "has_payment_url": tx.payment_url is not None,
                    },
                )
                if outcome is not None:
                    if outcome == PurchaseState.FAILED:
                        tx.error = "Purchase failed"
                    tx.advance(outcome)
                    return
                delay = options.poll_interval

            if tx.poll_attempts < options.max_poll_attempts:
                if await self._wait(delay, options, deadline):
                    self._mark_cancelled(tx)
                    return

        tx.error = (
            f"Polling timeout: {last_error}"
            if last_error
            else f"Polling timeout: Payment URL not found after {tx.poll_attempts} attempts"
        )
        tx.advance(PurchaseState.POLLING_TIMEOUT)
        logger.warning(
            "Polling esgotado sem estado terminal",
            extra={"transaction_id": mask_id(transaction_id), "poll_attempts": tx.poll_attempts},
        )

    async def _wait(
        self, delay: float, options: PollingOptions, deadline: float | None
    ) -> bool:
        """Aguarda `delay`; True se o polling deve parar (cancelamento ou prazo)."""
        event = options.cancel_event
        if event is not None and event.is_set():
            return True
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return True
            delay = min(delay, remaining)

        if event is None:
            await self._sleep(delay)
        else:
            try:
                await asyncio.wait_for(event.wait(), timeout=delay)
            except TimeoutError:
                pass
            else:
                return True

        return deadline is not None and self._clock() >= deadline

    def _mark_cancelled(self, tx: PurchaseTransaction) -> None:
        tx.cancelled = True
        logger.info(
            "Polling interrompido; retornando último estado conhecido",
            extra={
                "transaction_id": mask_id(tx.transaction_id),
                "state": tx.state.value,
                "poll_attempts": tx.poll_attempts,
            },
        )

    def _flow_error(self, tx: PurchaseTransaction, error: CarrierError) -> FlowError:
        tx.error = str(error)
        logger.error(
            "Fluxo de compra falhou",
            extra={
                "state": tx.state.value,
                "error_type": error.error_type,
                "status_code": error.status_code,
                "transaction_id": mask_id(tx.transaction_id),
                "client_account_id": mask_id(tx.client_account_id),
            },
        )
        return FlowError(
            f"Purchase flow failed at {tx.state.value}: {error}",
            state=tx.state.value,
            transaction_id=tx.transaction_id,
            client_account_id=tx.client_account_id,
            error_type=error.error_type,
        )
