# paygate/x402/types.py
"""
Data model for the x402 payment gate.

Static configuration (PaymentOption, FacilitatorBinding) is validated once at
startup and is read-only afterwards. PaymentRequirement, VerifyResult and
SettleResult are built and discarded within a single request.
"""
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from paygate.x402.amounts import to_minor_units

FacilitatorVariant = Literal["standard", "signed"]


class PaymentOption(BaseModel):
    """
    One accepted way to pay for a route.

    The ``network`` field identifies the option within its route and is the
    selector clients echo back in their payment claim.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    price: str = Field(..., description="Decimal price, e.g. '0.1'")
    chain_id: int
    token: str = Field(..., description="Token contract address used as 'asset'")
    usdc_name: str = Field(..., description="Token contract name for the EIP-712 domain")
    usdc_version: str = Field(..., description="Token contract version for the EIP-712 domain")
    network: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def lift_nested_config(cls, data: Any) -> Any:
        # Options may carry description/metadata under a nested "config" object
        if isinstance(data, dict) and isinstance(data.get("config"), dict):
            data = dict(data)
            nested = data.pop("config")
            data.setdefault("description", nested.get("description"))
            data.setdefault("metadata", nested.get("metadata"))
        return data

    @field_validator("price")
    @classmethod
    def validate_price(cls, value: str) -> str:
        to_minor_units(value)
        return value

    @field_validator("network")
    @classmethod
    def validate_network(cls, value: str) -> str:
        if not value:
            raise ValueError("network must not be empty")
        return value


class FacilitatorCredentials(BaseModel):
    """API credentials for the signed facilitator variant."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    api_key: str
    secret_key: str
    passphrase: str
    project: Optional[str] = None


class FacilitatorBinding(BaseModel):
    """Where and how to reach a facilitator."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    url: str
    variant: FacilitatorVariant = Field(
        "standard", validation_alias=AliasChoices("variant", "type")
    )
    credentials: Optional[FacilitatorCredentials] = None

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("facilitator url must not be empty")
        return value

    @model_validator(mode="after")
    def require_credentials_for_signed(self) -> "FacilitatorBinding":
        if self.variant == "signed" and self.credentials is None:
            raise ValueError("signed facilitator requires credentials")
        return self


class RequirementExtra(BaseModel):
    """Token domain parameters echoed verbatim from the option."""
    name: str
    version: str


class PaymentRequirement(BaseModel):
    """Wire-format x402 payment requirement."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scheme: Literal["exact"] = "exact"
    network: Optional[str] = None
    max_amount_required: str
    resource: str
    description: str = ""
    mime_type: str = ""
    pay_to: str
    max_timeout_seconds: int
    asset: str
    output_schema: Dict[str, Any] = Field(default_factory=dict)
    extra: RequirementExtra

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys; 'network' is omitted when unset."""
        data = self.model_dump(by_alias=True)
        if data.get("network") is None:
            data.pop("network", None)
        return data


@dataclass
class VerifyResult:
    """Outcome of a facilitator verify call."""
    valid: bool
    reason: Optional[str] = None


@dataclass
class SettleResult:
    """Outcome of a facilitator settle call."""
    success: bool
    tx_hash: Optional[str] = None
    reason: Optional[str] = None
