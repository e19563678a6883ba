import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx
import jwt

from ltcf_ingestor.commons.errors import AuthError, SubmissionError
from ltcf_ingestor.commons.logger import logger

FHIR_XML = "application/fhir+xml"
TRANSACTION_HEADER = "x-cihi-transaction-id"
# Renovar el token antes de que expire
TOKEN_REFRESH_BUFFER_S = 60


@dataclass
class SubmissionResult:
    status_code: int
    body: str
    transaction_id: Optional[str] = None


class TokenManager:
    """OAuth2 client-credentials con una client assertion firmada en RS256.

    El token se reutiliza hasta ``TOKEN_REFRESH_BUFFER_S`` segundos antes de caducar.
    """

    def __init__(
        self,
        token_endpoint: str,
        system_identifier: str,
        audience: str,
        scope: str,
        private_key: Optional[str] = None,
        private_key_path: Optional[str] = None,
        lifetime_seconds: int = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        if private_key is None and private_key_path:
            private_key = Path(private_key_path).read_text(encoding="utf-8")
        if not private_key:
            raise AuthError("A private key is required to sign the client assertion")
        self.token_endpoint = token_endpoint
        self.system_identifier = system_identifier
        self.audience = audience
        self.scope = scope
        self.private_key = private_key
        self.lifetime_seconds = lifetime_seconds
        self.transport = transport
        self.clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    @classmethod
    def from_settings(cls, auth_cfg, transport: Optional[httpx.AsyncBaseTransport] = None) -> "TokenManager":
        return cls(
            token_endpoint=auth_cfg.token_endpoint,
            system_identifier=auth_cfg.system_identifier,
            audience=auth_cfg.audience,
            scope=auth_cfg.scope,
            private_key_path=auth_cfg.private_key_path,
            lifetime_seconds=auth_cfg.token_lifetime_seconds,
            transport=transport,
        )

    def client_assertion(self) -> str:
        now = int(self.clock())
        claims = {
            "iss": self.system_identifier,
            "sub": f"AccessRequest{self.system_identifier}",
            "scope": self.scope,
            "aud": self.audience,
            "iat": now,
            "exp": now + self.lifetime_seconds,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    async def get_token(self) -> str:
        if self._token and self.clock() < self._expires_at - TOKEN_REFRESH_BUFFER_S:
            return self._token

        data = {"grant_type": "client_credentials", "assertion": self.client_assertion()}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=30.0) as client:
                resp = await client.post(self.token_endpoint, data=data)
        except httpx.HTTPError as ex:
            raise AuthError(f"Token request failed: {ex}") from ex
        if resp.status_code >= 400:
            raise AuthError(f"Token endpoint returned {resp.status_code}", resp.status_code, resp.text)
        try:
            payload = resp.json()
        except ValueError as ex:
            raise AuthError("Token endpoint returned invalid JSON", resp.status_code, resp.text) from ex
        token = payload.get("access_token")
        if not token:
            raise AuthError("Token response has no access_token", resp.status_code, resp.text)

        self._token = token
        self._expires_at = self.clock() + float(payload.get("expires_in", self.lifetime_seconds))
        logger.info("Token de acceso obtenido")
        return token


class SubmissionClient:
    def __init__(
        self,
        endpoint: str,
        tokens: TokenManager,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.tokens = tokens
        self.timeout = timeout
        self.transport = transport

    async def submit(self, xml_text: str) -> SubmissionResult:
        token = await self.tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": FHIR_XML,
            "Accept": FHIR_XML,
        }
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.post(self.endpoint, content=xml_text.encode("utf-8"), headers=headers)
        except httpx.HTTPError as ex:
            raise SubmissionError(f"Submission failed: {ex}") from ex

        transaction_id = resp.headers.get(TRANSACTION_HEADER)
        logger.info(f"Envío -> HTTP {resp.status_code} (transaction id: {transaction_id})")
        if not resp.is_success:
            raise SubmissionError(f"Submission returned HTTP {resp.status_code}", resp.status_code, resp.text)
        return SubmissionResult(status_code=resp.status_code, body=resp.text, transaction_id=transaction_id)
