from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class _CamelModel(BaseModel):
    # accept both camelCase (what the wallet client sends) and snake_case
    model_config = ConfigDict(populate_by_name=True)


class NonceRequest(_CamelModel):
    public_address: str = Field(..., alias="publicAddress", description="Ethereum address (0x + 40 hex).")


class NonceResponse(_CamelModel):
    public_address: Optional[str] = Field(None, alias="publicAddress")
    nonce: str = Field(..., description="Nonce to embed in the challenge message.")


class AuthenticateRequest(_CamelModel):
    public_address: str = Field(..., alias="publicAddress", description="Claimed Ethereum address.")
    signature: str = Field(..., description="personal_sign signature of the challenge message (0x + 130 hex).")


class IdentityResponse(_CamelModel):
    public_address: str = Field(..., alias="publicAddress")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")
    login_count: int = Field(0, alias="loginCount")


class AuthenticateResponse(_CamelModel):
    access_token: str = Field(..., alias="accessToken", description="Short-lived JWT access token.")
    refresh_token: str = Field(..., alias="refreshToken", description="Long-lived opaque refresh token.")
    expires_in: int = Field(..., alias="expiresIn", description="Access token lifetime in seconds.")
    token_type: str = Field("bearer", alias="tokenType")
    user: IdentityResponse


class RefreshRequest(_CamelModel):
    refresh_token: str = Field(..., alias="refreshToken")


class RefreshResponse(_CamelModel):
    access_token: str = Field(..., alias="accessToken")
    expires_in: int = Field(..., alias="expiresIn")
    token_type: str = Field("bearer", alias="tokenType")


class LogoutResponse(_CamelModel):
    ok: bool = True
    message: str = "Logged out successfully"


class TokenData(BaseModel):
    sub: str  # lowercase wallet address
