"""Provider credentials supplied by the tenant."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from drivers.errors import ConfigurationError


class ProviderCredential(BaseModel):
    """Raw secrets for one tenant's provider account.

    Immutable. Secret fields are hidden from ``repr`` so credentials never
    end up in logs by accident.
    """
    model_config = ConfigDict(frozen=True)

    provider: str
    tenant_id: str
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(default=None, repr=False)
    api_key: Optional[str] = Field(default=None, repr=False)
    api_secret: Optional[str] = Field(default=None, repr=False)
    company_id: Optional[str] = None
    firm_id: Optional[str] = None
    extra: Dict[str, str] = Field(default_factory=dict, repr=False)

    def value(self, name: str) -> Optional[str]:
        """Named field, falling back to ``extra``."""
        if name in type(self).model_fields and name != "extra":
            return getattr(self, name)
        return self.extra.get(name)

    def require(self, *names: str) -> None:
        """Fail fast when required fields are blank.

        Raises:
            ConfigurationError: Lists every missing field
        """
        missing = [n for n in names if not self.value(n)]
        if missing:
            raise ConfigurationError(
                f"{self.provider} credentials for tenant {self.tenant_id} are missing: {', '.join(missing)}"
            )

    def require_any(self, *groups) -> None:
        """At least one group of fields must be complete, e.g. user/pass or key/secret."""
        for group in groups:
            if all(self.value(n) for n in group):
                return
        options = " or ".join("/".join(g) for g in groups)
        raise ConfigurationError(
            f"{self.provider} credentials for tenant {self.tenant_id} need {options}"
        )
