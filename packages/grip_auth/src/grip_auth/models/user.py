"""User profile models exchanged with the ``/auth`` endpoints.

Field names are snake_case in Python and camelCase on the wire; every
model accepts either spelling on input and dumps camelCase.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class APIBaseModel(BaseModel):
    """Base class for API models with readable JSON formatting."""

    model_config = ConfigDict(populate_by_name=True)

    def __str__(self) -> str:
        return self.model_dump_json(indent=2, by_alias=True)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the backend: camelCase keys, unset fields left out."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class RiskAppetite(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class User(APIBaseModel):
    """
    Profile of the signed-in user.

    Instances are frozen: a login or profile fetch replaces the user
    wholesale, and a profile update produces a new instance through
    `merged`. Fields the backend sends that are not declared here (account
    balance, KYC status, portfolio summary...) are kept as extras.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    id: str | int
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    phone: str | None = None
    risk_appetite: RiskAppetite | None = Field(default=None, alias="riskAppetite")
    bio: str | None = None
    avatar: str | None = None
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def merged(self, changes: dict[str, Any]) -> "User":
        """Return a copy with the given wire fields replaced.

        Keys not present in ``changes`` keep their current value.
        """
        data = self.model_dump(by_alias=True)
        data.update(changes)
        return User.model_validate(data)


class SignupRequest(APIBaseModel):
    """Registration fields for ``POST /auth/signup``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str = Field(alias="firstName", min_length=1, max_length=50)
    last_name: str | None = Field(default=None, alias="lastName", max_length=50)
    email: str = Field(max_length=100)
    password: str = Field(min_length=1)
    phone: str | None = Field(default=None, max_length=15)
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")
    risk_appetite: RiskAppetite | None = Field(default=None, alias="riskAppetite")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError("A valid email address is required")
        return v

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ProfileUpdate(APIBaseModel):
    """Partial profile for ``PUT /auth/profile``.

    Only fields explicitly set are sent, and only those are merged into the
    local user on success.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    phone: str | None = None
    risk_appetite: RiskAppetite | None = Field(default=None, alias="riskAppetite")
    bio: str | None = None
    avatar: str | None = None
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")
