from typing import Optional, Union

from pydantic import BaseModel, Field


class Site(BaseModel):
    """A virtual host known to the web server."""

    name: str = Field(
        ...,
        description="Filesystem-safe slug derived from the domain, used as config file name",
    )
    domain: str = Field(..., description="Declared server name, e.g. example.com")
    document_root: Optional[str] = Field(
        None,
        description="Directory served for this site, e.g. /var/www/example.com",
    )
    php_enabled: bool = Field(False, description="True if a PHP-FPM handler is configured")
    ssl_enabled: bool = Field(False, description="True if a certificate directive is present")
    enabled: bool = Field(False, description="True if the activation marker exists")
    config_path: str = Field(..., description="Path of the config under sites-available")
    parse_error: Optional[str] = Field(
        None,
        description="Set when the config file could not be read or parsed",
    )


class VhostMetadata(BaseModel):
    """Metadata extracted from a virtual-host config file."""

    server_name: str
    document_root: Optional[str] = None
    ssl_enabled: bool = False
    php_enabled: bool = False


class UnparseableConfig(BaseModel):
    """A config file from which no server name could be extracted."""

    reason: str


ParsedVhost = Union[VhostMetadata, UnparseableConfig]


class SiteCreateRequest(BaseModel):
    """Intent to create a new hosted site."""

    domain: str = Field(..., description="Domain to serve, e.g. example.com")
    directory: Optional[str] = Field(
        None,
        description="Document root; defaults to <web_root>/<slug>",
    )
    php: bool = Field(False, description="Enable the PHP-FPM handler")
    ssl: bool = Field(False, description="Request a certificate after creation")


class SiteToggleRequest(BaseModel):
    enabled: bool
