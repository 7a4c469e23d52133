"""Third-party identity providers.

The authorization-code exchange itself lives outside this service; the web
layer is handed a ProviderGateway implementation at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import urlencode

from praxis.models.linked_account import ProviderIdentity
from praxis.settings import ProviderConfig, settings


class ProviderGateway(ABC):
    @abstractmethod
    def exchange_code(self, provider: str, code: str, redirect_uri: str) -> ProviderIdentity:
        """Trade an authorization code for the provider-side identity."""


def redirect_uri(provider: str) -> str:
    return f"{settings.provider_redirect_base.rstrip('/')}/{provider}/callback"


def authorization_url(provider: str, config: ProviderConfig, state: str) -> str:
    query = urlencode(
        {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": redirect_uri(provider),
            "scope": " ".join(config.scopes),
            "state": state,
        }
    )
    separator = "&" if "?" in config.authorize_url else "?"
    return f"{config.authorize_url}{separator}{query}"
