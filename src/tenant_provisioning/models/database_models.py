"""
Connection configuration models.

`DatabaseConfig` is the value a `ConnectionHandle` is built from: the ordered list of
cluster endpoints, the target database and the per-session tuning knobs.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_REQUESTS_PER_SESSION = 30


class AuthOptions(BaseModel):
    """Client certificate authentication material (PEM text, already base64-decoded).

    Attributes:
        certificate (str): PEM-encoded client certificate.
        private_key (str): PEM-encoded private key matching the certificate.
        type (Literal["pem"]): Encoding of the material.
    """
    certificate: str = Field(..., min_length=1, description="PEM client certificate")
    private_key: str = Field(..., min_length=1, description="PEM private key")
    type: Literal["pem"] = Field("pem", description="Certificate encoding")

    def __repr__(self) -> str:
        return "AuthOptions(type='pem', certificate=<redacted>, private_key=<redacted>)"


class DatabaseConfig(BaseModel):
    """Configuration for one logical connection to a named database.

    Attributes:
        urls (List[str]): Ordered cluster endpoint URLs (`mongodb://host:port`).
        database (str): Target database name.
        auth_options (Optional[AuthOptions]): Client certificate, if the cluster requires one.
        enable_optimistic_concurrency (bool): Make replacements conditional on the loaded version.
        max_requests_per_session (int): Store round trips allowed per unit of work.
        server_selection_timeout_ms (int): Driver server selection timeout.
        connect_timeout_ms (int): Driver socket connect timeout.
    """
    urls: List[str] = Field(..., min_length=1, description="Cluster endpoint URLs")
    database: str = Field(..., min_length=1, max_length=63, description="Database name")
    auth_options: Optional[AuthOptions] = Field(None, description="Client certificate auth")
    enable_optimistic_concurrency: bool = Field(True, description="Optimistic concurrency flag")
    max_requests_per_session: int = Field(
        DEFAULT_MAX_REQUESTS_PER_SESSION, ge=1, description="Max requests per session"
    )
    server_selection_timeout_ms: int = Field(5000, ge=1, description="Server selection timeout (ms)")
    connect_timeout_ms: int = Field(10000, ge=1, description="Connect timeout (ms)")

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v):
        """Strip whitespace and drop empty entries."""
        urls = [url.strip() for url in v if url and url.strip()]
        if not urls:
            raise ValueError("At least one endpoint URL is required")
        return urls

    @field_validator("database")
    @classmethod
    def validate_database(cls, v):
        """Reject characters MongoDB does not allow in database names."""
        v = v.strip()
        for char in '/\\. "$':
            if char in v:
                raise ValueError(f"Invalid character {char!r} in database name")
        return v

    def with_database(self, database: str) -> "DatabaseConfig":
        """Return a copy targeting another database."""
        return self.model_validate({**self.model_dump(), "database": database})

    def with_urls(self, urls: List[str]) -> "DatabaseConfig":
        """Return a copy pointing at another set of endpoints."""
        return self.model_validate({**self.model_dump(), "urls": list(urls)})
