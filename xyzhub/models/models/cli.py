import re

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_API_BASE_URL = "https://xyz.api.here.com/hub"


class TokenData(BaseModel):
    access_token: str
    name: str | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("access_token")
    def validate_access_token(cls, v):
        if not v or not v.strip():
            raise ValueError("Access token cannot be empty")
        if any(ch.isspace() for ch in v):
            raise ValueError("Access token must not contain whitespace")
        return v


class CLIConfig(BaseModel):
    api_base_url: str = DEFAULT_API_BASE_URL
    token: TokenData
    timeout: float = 60.0
    gzip: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("api_base_url")
    def validate_api_base_url(cls, v):
        """
        Validates that the URL starts with http:// or https://, optionally
        carries a port and a path prefix, and strips the trailing slash.
        """
        pattern = r"^https?:\/\/[^\/\s]+(?::\d+)?(\/[^\s]*)?$"
        if not re.match(pattern, v):
            raise ValueError("Invalid URL format")
        return v.rstrip("/")

    @field_validator("timeout")
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    def with_token(self, access_token: str | None) -> "CLIConfig":
        """Return a copy using ``access_token`` instead of the stored one."""
        if not access_token:
            return self
        return self.model_copy(update={"token": TokenData(access_token=access_token)})
