"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars ou Secret Manager.
Credenciais da operadora nunca têm valor padrão no código.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from lineflow.infra.secrets import create_secret_provider
from lineflow.observability.logging import get_logger

# -----------------------------------------------------------------------------
# Endpoints da API da operadora (tenant "reach")
# -----------------------------------------------------------------------------
CARRIER_AUTH_PATH: str = "/apisvc/v0/account/generateauth"
CARRIER_QUOTE_PATH: str = "/apisvc/v0/product/quote"
CARRIER_PURCHASE_PATH: str = "/apisvc/v0/product"
CARRIER_STATUS_PATH: str = "/apisvc/v0/product/status"
CARRIER_PRODUCTS_PATH: str = "/apisvc/v0/product/fetch"


class Settings(BaseSettings):
    """Configurações lidas do ambiente.

    Comentários em PT-BR são obrigatórios por diretriz do projeto.
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "lineflow"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Sessão (FlowContext + Cart)
    session_store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    session_ttl_seconds: int = 7200  # 2h, igual ao TTL do carrinho
    session_sweep_interval_seconds: int = 1800  # Varredura de expirados (30 min)
    conversation_history_max: int = 10  # Entradas mantidas no histórico

    # API da operadora
    carrier_tenant: str = "reach"
    carrier_api_base_url: str = "https://api-rm-common-qa.reachmobileplatform.com"
    carrier_api_key: str | None = None  # Header x-api-key (Secret Manager)
    carrier_access_key_id: str | None = None  # accountAccessKeyId
    carrier_access_secret_key: str | None = None  # accountAccessSecreteKey
    carrier_auth_path: str = CARRIER_AUTH_PATH
    carrier_quote_path: str = CARRIER_QUOTE_PATH
    carrier_purchase_path: str = CARRIER_PURCHASE_PATH
    carrier_status_path: str = CARRIER_STATUS_PATH
    carrier_products_path: str = CARRIER_PRODUCTS_PATH
    carrier_request_timeout_seconds: float = 30.0
    carrier_max_retries: int = 3
    carrier_retry_backoff_seconds: float = 1.0
    carrier_retry_backoff_max_seconds: float = 10.0
    carrier_auth_timeout_seconds: float = 15.0
    carrier_token_refresh_buffer_seconds: int = 1200  # Renova 20 min antes de expirar

    # Catálogo de planos (enriquecimento do nome canônico)
    plan_catalog_cache_seconds: int = 300

    # Fluxo de compra (quote → purchase → status)
    purchase_max_poll_attempts: int = 40
    purchase_poll_interval_seconds: float = 3.0
    purchase_initial_poll_delay_seconds: float = 5.0
    purchase_max_backoff_seconds: float = 10.0
    purchase_redirect_url: str = "https://www.google.com/"
    purchase_agent_id: str | None = None  # Padrão: {ENVIRONMENT}_AGENT
    purchase_shipment_type: str = "usps_first_class_mail"
    purchase_payment_type: str = "CARD"
    purchase_acquisition_source: str = "Online"

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def effective_agent_id(self) -> str:
        """Agent id enviado no meta da compra."""
        return self.purchase_agent_id or f"{self.environment.upper()}_AGENT"

    def carrier_url(self, path: str) -> str:
        """Monta URL absoluta da API da operadora."""
        return f"{self.carrier_api_base_url.rstrip('/')}/{path.lstrip('/')}"

    def validate_session_store_config(self) -> list[str]:
        """Valida backend de session store por ambiente.

        Em staging/prod, memory é proibido (instâncias não compartilham estado).
        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        backend = self.session_store_backend.lower()

        valid_backends = {"memory", "redis"}
        if backend not in valid_backends:
            errors.append(
                f"SESSION_STORE_BACKEND '{backend}' inválido. Valores válidos: {valid_backends}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "SESSION_STORE_BACKEND=memory é proibido em staging/production. "
                "Use 'redis' para sessões compartilhadas."
            )

        if backend == "redis" and not self.redis_url:
            errors.append("SESSION_STORE_BACKEND=redis requer REDIS_URL configurado")

        if self.session_ttl_seconds <= 0:
            errors.append("SESSION_TTL_SECONDS deve ser > 0")
        return errors

    def validate_carrier_config(self) -> list[str]:
        """Valida credenciais e transporte da API da operadora.

        Em development as credenciais podem faltar (apenas fluxo local).
        """
        errors: list[str] = []
        if not self.carrier_api_base_url.startswith(("http://", "https://")):
            errors.append("CARRIER_API_BASE_URL deve começar com http:// ou https://")

        if (self.is_staging or self.is_production) and self.carrier_api_base_url.startswith(
            "http://"
        ):
            errors.append("CARRIER_API_BASE_URL deve usar https em staging/production")

        if not self.is_development:
            if not self.carrier_api_key:
                errors.append("CARRIER_API_KEY não configurado")
            if not self.carrier_access_key_id:
                errors.append("CARRIER_ACCESS_KEY_ID não configurado")
            if not self.carrier_access_secret_key:
                errors.append("CARRIER_ACCESS_SECRET_KEY não configurado")

        if self.carrier_max_retries < 0:
            errors.append("CARRIER_MAX_RETRIES deve ser >= 0")
        if self.carrier_token_refresh_buffer_seconds < 0:
            errors.append("CARRIER_TOKEN_REFRESH_BUFFER_SECONDS deve ser >= 0")
        return errors

    def validate_purchase_config(self) -> list[str]:
        """Valida parâmetros de polling do fluxo de compra."""
        errors: list[str] = []
        if self.purchase_max_poll_attempts < 1:
            errors.append("PURCHASE_MAX_POLL_ATTEMPTS deve ser >= 1")
        if self.purchase_poll_interval_seconds < 0:
            errors.append("PURCHASE_POLL_INTERVAL_SECONDS deve ser >= 0")
        if self.purchase_initial_poll_delay_seconds < 0:
            errors.append("PURCHASE_INITIAL_POLL_DELAY_SECONDS deve ser >= 0")
        if self.purchase_max_backoff_seconds < self.purchase_poll_interval_seconds:
            errors.append(
                "PURCHASE_MAX_BACKOFF_SECONDS deve ser >= PURCHASE_POLL_INTERVAL_SECONDS"
            )
        return errors

    def model_post_init(self, __context: Any) -> None:
        """Carrega credenciais da operadora do Secret Manager em staging/production.

        - Em development, credenciais vêm de env vars
        - Nunca loga valores de secrets
        - Fail-closed se o provider não puder ser criado
        """
        logger: logging.Logger = get_logger(__name__)

        if self.is_development:
            return

        # Em testes com environment=staging/prod evitamos chamada real ao Secret Manager.
        if os.getenv("PYTEST_CURRENT_TEST") or os.getenv("SKIP_SECRET_MANAGER", "") == "true":
            logger.info(
                "Pulando Secret Manager",
                extra={"environment": self.environment},
            )
            return

        project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
        if not project_id:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT obrigatório em staging/production")

        try:
            provider = create_secret_provider(backend="secret_manager", project_id=project_id)
        except Exception as e:
            logger.error(
                "Falha ao criar Secret Manager provider",
                extra={"error": type(e).__name__, "environment": self.environment},
            )
            raise RuntimeError(
                f"Não foi possível inicializar Secret Manager: {type(e).__name__}"
            ) from e

        # Nome no Secret Manager → atributo em Settings
        secret_mappings = {
            "CARRIER_API_KEY": "carrier_api_key",
            "CARRIER_ACCESS_KEY_ID": "carrier_access_key_id",
            "CARRIER_ACCESS_SECRET_KEY": "carrier_access_secret_key",
        }
        for secret_name, attr_name in secret_mappings.items():
            if getattr(self, attr_name):
                continue
            if not provider.secret_exists(secret_name):
                logger.warning(
                    "Secret não encontrado no Secret Manager",
                    extra={"secret_name": secret_name, "environment": self.environment},
                )
                continue
            setattr(self, attr_name, provider.get_secret(secret_name))
            logger.info(
                "Secret carregado do Secret Manager",
                extra={"secret_name": secret_name, "environment": self.environment},
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna instância única de Settings (cacheada)."""
    return Settings()
