from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

USER_AGENT_MAX_LENGTH = 500
IP_MAX_LENGTH = 45  # longest textual IPv6 form


def clip(value: Optional[str], limit: int) -> Optional[str]:
    """Trim client-supplied metadata to ``limit`` characters. Empty values become None."""
    if not value or not isinstance(value, str):
        return None
    return value[:limit]


class ErrorResponse(BaseModel):
    detail: str


class Identity(BaseModel):
    """A wallet identity as kept by the identity store."""
    id: str = Field(..., description="Opaque identity id, owner key for refresh tokens.")
    address: str = Field(..., description="Lowercase 0x-prefixed 20-byte hex address.")
    nonce: str = Field(..., description="Current single-use challenge. Never returned to clients except by the nonce request path.")
    created_at: datetime
    last_login: Optional[datetime] = None
    login_count: int = 0
    is_active: bool = True
    last_login_ip: Optional[str] = None
    last_user_agent: Optional[str] = None

    def public_view(self) -> "PublicIdentity":
        return PublicIdentity(
            address=self.address,
            last_login=self.last_login,
            login_count=self.login_count,
        )


class PublicIdentity(BaseModel):
    """Identity fields that are safe to hand back to the client (no nonce)."""
    address: str
    last_login: Optional[datetime] = None
    login_count: int = 0


class RefreshTokenRecord(BaseModel):
    secret: str = Field(..., description="Opaque random refresh secret.")
    identity_id: str
    address: str
    issued_at: datetime
    expires_at: datetime
    # Insertion counter, breaks ties between tokens issued in the same instant
    sequence: int = 0
    last_used_at: Optional[datetime] = None
    # Client metadata, clipped to USER_AGENT_MAX_LENGTH / IP_MAX_LENGTH
    user_agent: Optional[str] = None
    last_used_ip: Optional[str] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None

    def is_live(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > now
