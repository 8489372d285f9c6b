"""
Integration Configuration Schemas

Defines the configuration for one connected provider.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderType(str, Enum):
    """Provider types known to the product."""

    # Social
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"

    # Financial
    PLAID = "plaid"  # Banking aggregator
    STRIPE = "stripe"
    PAYPAL = "paypal"

    # Productivity
    GOOGLE_CALENDAR = "google-calendar"
    NOTION = "notion"
    SPOTIFY = "spotify"
    GITHUB = "github"
    GMAIL = "gmail"

    # CRM
    HUBSPOT = "hubspot"
    SALESFORCE = "salesforce"

    # User-supplied JSON endpoint
    CUSTOM = "custom"


class IntegrationConfig(BaseModel):
    """
    Configuration for one connected provider.

    Immutable once created and replaced wholesale on reconnect. At most one
    active connection exists per `provider_type`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider_type: str

    # Credential material (opaque to the core)
    access_token: str | None = Field(default=None, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    api_key: str | None = Field(default=None, repr=False)
    client_id: str | None = None
    client_secret: str | None = Field(default=None, repr=False)
    webhook_url: str | None = None
    custom_endpoint: str | None = None

    # Provider-specific extra config
    extra: dict[str, str] = Field(default_factory=dict)

    enabled: bool = True

    @field_validator("provider_type", mode="before")
    @classmethod
    def _normalize_provider_type(cls, value: object) -> str:
        if isinstance(value, ProviderType):
            value = value.value
        normalized = str(value).strip().lower()
        if not normalized:
            raise ValueError("provider_type must not be empty")
        return normalized

    def credential(self, name: str) -> str | None:
        """Look up a credential field, falling back to `extra`."""
        value = getattr(self, name, None) if name in type(self).model_fields else None
        if value is None:
            value = self.extra.get(name)
        return value or None

    def missing_credentials(self, required: tuple[str, ...]) -> list[str]:
        return [name for name in required if self.credential(name) is None]
