"""Configurações centralizadas do lineflow.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única
- Paths padrão da API da operadora (CARRIER_*_PATH)

Uso típico:
    from lineflow.config import get_settings
"""

from lineflow.config.settings import (
    CARRIER_AUTH_PATH,
    CARRIER_PRODUCTS_PATH,
    CARRIER_PURCHASE_PATH,
    CARRIER_QUOTE_PATH,
    CARRIER_STATUS_PATH,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "CARRIER_AUTH_PATH",
    "CARRIER_QUOTE_PATH",
    "CARRIER_PURCHASE_PATH",
    "CARRIER_STATUS_PATH",
    "CARRIER_PRODUCTS_PATH",
]
