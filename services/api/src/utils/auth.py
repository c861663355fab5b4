from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel

from . import log

logger = log.get_logger(__name__)


class AuthClientConfig(BaseModel):
    jwk_url: str
    audience: str
    issuer: str


class AuthClient:
    """Verifies bearer tokens against the identity provider's JWK set."""

    def __init__(self, config: AuthClientConfig):
        self.config = config
        self._jwks = jwt.PyJWKClient(config.jwk_url)

    def decode_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except jwt.PyJWTError as e:
            logger.warning("Rejected token: %s", e)
            return None
