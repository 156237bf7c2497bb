"""Provedores de segredos (env vars e Google Secret Manager).

Implementações devem:
- Nunca logar o valor do secret
- Levantar RuntimeError se o secret não for encontrado
"""

from __future__ import annotations

import logging
import os
from typing import Protocol

from lineflow.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class SecretProvider(Protocol):
    """Porta para leitura de segredos."""

    def get_secret(self, name: str, version: str = "latest") -> str:
        """Obtém o valor do segredo."""

    def secret_exists(self, name: str) -> bool:
        """Verifica se um secret existe sem retornar seu valor."""


class EnvSecretProvider:
    """Segredos lidos de variáveis de ambiente (dev, testes, CI)."""

    def get_secret(self, name: str, version: str = "latest") -> str:
        value = os.getenv(name)
        if not value:
            logger.warning(
                "Secret não encontrado no ambiente",
                extra={"secret_name": name, "provider": "env"},
            )
            raise RuntimeError(f"Secret {name} não encontrado no ambiente")
        return value

    def secret_exists(self, name: str) -> bool:
        return os.getenv(name) is not None


class SecretManagerProvider:
    """Segredos lidos do Google Cloud Secret Manager.

    Requer google-cloud-secret-manager e Application Default Credentials.
    O client é criado na primeira leitura.
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        self._client = None

    def _get_client(self):
        if self._client is None:
            from google.cloud import secretmanager

            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, name: str) -> str:
        if not self._project_id:
            raise RuntimeError("project_id não configurado (GOOGLE_CLOUD_PROJECT)")
        return f"projects/{self._project_id}/secrets/{name}"

    def get_secret(self, name: str, version: str = "latest") -> str:
        client = self._get_client()
        try:
            response = client.access_secret_version(
                name=f"{self._secret_path(name)}/versions/{version}"
            )
        except Exception as e:
            logger.error(
                "Falha ao acessar Secret Manager",
                extra={"secret_name": name, "error_type": type(e).__name__},
            )
            raise RuntimeError(f"Não foi possível acessar secret {name}") from e
        return response.payload.data.decode("utf-8")

    def secret_exists(self, name: str) -> bool:
        client = self._get_client()
        try:
            client.get_secret(name=self._secret_path(name))
        except Exception:  # pylint: disable=broad-except
            return False
        return True


def create_secret_provider(backend: str = "env", project_id: str | None = None) -> SecretProvider:
    """Factory para criar o provider de secrets apropriado."""
    if backend == "env":
        return EnvSecretProvider()

    if backend == "secret_manager":
        logger.info(
            "Usando SecretManagerProvider para secrets",
            extra={"project_id": project_id},
        )
        return SecretManagerProvider(project_id=project_id)

    raise ValueError(f"Backend de secrets não reconhecido: {backend}")
