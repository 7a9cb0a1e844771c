# openid.py — OpenID Connect provider discovery cache
"""
Providers come from the OPENID_PROVIDERS env var, a JSON array of
{"name", "authurl", "clientid", "clientsecret"} objects. Each provider's
discovery document is fetched once, on first use, and kept for the life
of the process. The cache hangs off app.state.
"""
import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger("donelist.openid")

OPENID_ENABLED = os.getenv("OPENID_ENABLED", "false").lower() == "true"
OPENID_PROVIDERS = os.getenv("OPENID_PROVIDERS", "[]")
OPENID_REDIRECT_URL = os.getenv("OPENID_REDIRECT_URL", "http://localhost:8080/auth/openid/")
DISCOVERY_PATH = "/.well-known/openid-configuration"
SCOPES = ["openid", "profile", "email"]

_KEY_CHARS = re.compile(r"[^a-z0-9]+")


def get_key_from_name(name: str) -> str:
    return _KEY_CHARS.sub("", name.lower())


class Provider(BaseModel):
    name: str
    key: str
    auth_url: str
    client_id: str
    client_secret: str = Field(default="", exclude=True)
    token_url: str = Field(default="", exclude=True)
    redirect_url: str = ""
    scopes: List[str] = Field(default_factory=lambda: list(SCOPES))


class OpenIDProviderCache:
    def __init__(
        self,
        raw_providers: List[Dict[str, Any]],
        enabled: bool = True,
        redirect_url: str = OPENID_REDIRECT_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.raw_providers = raw_providers
        self.enabled = enabled
        self.redirect_url = redirect_url
        self._transport = transport
        self._providers: Optional[Dict[str, Provider]] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_env(cls) -> "OpenIDProviderCache":
        try:
            raw = json.loads(OPENID_PROVIDERS or "[]")
        except json.JSONDecodeError as e:
            logger.error(f"OPENID_PROVIDERS is not valid JSON: {e}")
            raw = []
        return cls(raw if isinstance(raw, list) else [], enabled=OPENID_ENABLED)

    async def _discover(self, client: httpx.AsyncClient, raw: Dict[str, Any]) -> Optional[Provider]:
        name = raw.get("name")
        if not isinstance(name, str):
            return None
        key = get_key_from_name(name)
        issuer = str(raw.get("authurl", "")).rstrip("/")

        response = await client.get(issuer + DISCOVERY_PATH)
        response.raise_for_status()
        discovery = response.json()

        return Provider(
            name=name,
            key=key,
            auth_url=discovery.get("authorization_endpoint", issuer),
            token_url=discovery.get("token_endpoint", ""),
            client_id=str(raw.get("clientid", "")),
            client_secret=str(raw.get("clientsecret", "")),
            redirect_url=self.redirect_url + key,
        )

    async def ensure_providers_loaded(self) -> List[Provider]:
        """Load all providers on first call. Discovery failures propagate and leave the cache empty."""
        if not self.enabled:
            return []
        async with self._lock:
            if self._providers is None:
                providers: Dict[str, Provider] = {}
                async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                    for raw in self.raw_providers:
                        provider = await self._discover(client, raw)
                        if provider is not None:
                            providers[provider.key] = provider
                            logger.info(f"Loaded OpenID provider {provider.key}")
                self._providers = providers
        return list(self._providers.values())

    async def get_provider(self, key: str) -> Optional[Provider]:
        await self.ensure_providers_loaded()
        if not self._providers:
            return None
        return self._providers.get(key)
