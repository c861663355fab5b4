from dataclasses import dataclass, replace
from typing import Dict, Optional

DEFAULT_TIMEOUT_S = 15.0


@dataclass(frozen=True)
class SessionContext:
    """Everything a workflow needs to talk to the backend on a user's behalf."""
    base_url: str
    token: Optional[str] = None
    user_id: Optional[str] = None
    wallet_address: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_S

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def with_wallet(self, address: Optional[str]) -> "SessionContext":
        return replace(self, wallet_address=address)
