from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

CREDENTIAL_TYPE = "polarionApi"
DEFAULT_BASE_URL = "https://polarion.example.com/polarion/api/rest/v1"

AUTH_BASIC = "basic"
AUTH_TOKEN = "token"
# Older credentials stored the token auth method as "pat".
_AUTH_ALIASES = {"pat": AUTH_TOKEN}


class PolarionCredential(BaseModel):
    """
    Stored Polarion connection secret.

    The auth method is normalized but not restricted here; the request
    helper rejects unsupported methods with ConfigurationError.
    """

    model_config = ConfigDict(populate_by_name=True)

    base_url: str = Field(
        validation_alias=AliasChoices("baseUrl", "base_url"),
        serialization_alias="baseUrl",
    )
    authentication: str = AUTH_BASIC   # 'basic' | 'token'
    username: str = ""
    password: str = ""
    token: str = Field(
        default="", validation_alias=AliasChoices("token", "pat")
    )

    @field_validator("authentication", mode="before")
    @classmethod
    def _normalize_auth(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return _AUTH_ALIASES.get(value, value)
        return value

    def redacted(self) -> Dict[str, Any]:
        """Serializable view with secrets masked (safe for logs and APIs)."""
        return {
            "baseUrl": self.base_url,
            "authentication": self.authentication,
            "username": self.username,
            "password": "***" if self.password else "",
            "token": "***" if self.token else "",
        }


def _show_for_auth(method: str) -> Dict[str, Any]:
    return {"show": {"authentication": [method]}}


# Declarative form layout the host renders when a user configures the
# credential. Pure data: nothing here is enforced at runtime.
CREDENTIAL_PROPERTIES: List[Dict[str, Any]] = [
    {
        "displayName": "Base URL",
        "name": "baseUrl",
        "type": "string",
        "default": DEFAULT_BASE_URL,
        "placeholder": DEFAULT_BASE_URL,
        "description": (
            "The base URL of your Polarion instance REST API "
            "(must include /polarion/api/rest/v1)"
        ),
        "required": True,
    },
    {
        "displayName": "Authentication Method",
        "name": "authentication",
        "type": "options",
        "options": [
            {"name": "Basic Auth (Username and Password)", "value": AUTH_BASIC},
            {"name": "Personal Access Token (PAT)", "value": AUTH_TOKEN},
        ],
        "default": AUTH_BASIC,
        "description": "Select the authentication method to use.",
    },
    {
        "displayName": "Username",
        "name": "username",
        "type": "string",
        "default": "",
        "required": True,
        "displayOptions": _show_for_auth(AUTH_BASIC),
    },
    {
        "displayName": "Password",
        "name": "password",
        "type": "string",
        "typeOptions": {"password": True},
        "default": "",
        "required": True,
        "displayOptions": _show_for_auth(AUTH_BASIC),
    },
    {
        "displayName": "Personal Access Token",
        "name": "token",
        "type": "string",
        "typeOptions": {"password": True},
        "default": "",
        "required": True,
        "description": "Your generated Polarion Personal Access Token.",
        "displayOptions": _show_for_auth(AUTH_TOKEN),
    },
]

POLARION_API_CREDENTIAL: Dict[str, Any] = {
    "name": CREDENTIAL_TYPE,
    "displayName": "Polarion API",
    "documentationUrl": "https://docs.n8n.io/integrations/creating-nodes/build/reference/credentials-files/",
    "properties": CREDENTIAL_PROPERTIES,
}


class StoredCredential(BaseModel):
    """One entry in the credential store: a named secret of a given type."""

    name: str
    type: str = CREDENTIAL_TYPE
    data: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None

    def as_polarion(self) -> PolarionCredential:
        return PolarionCredential.model_validate(self.data)
