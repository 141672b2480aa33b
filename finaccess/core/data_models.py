"""Entity models decoded from API payloads."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for API entities: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class PixRequest(ApiModel):
    """A Pix transfer request exchanged with the central bank network."""

    id: Optional[str] = None
    amount: Optional[int] = Field(default=None, description="amount in cents")
    external_id: Optional[str] = None
    end_to_end_id: Optional[str] = None
    sender_account_number: Optional[str] = None
    sender_branch_code: Optional[str] = None
    sender_account_type: Optional[str] = None
    sender_name: Optional[str] = None
    sender_tax_id: Optional[str] = None
    sender_bank_code: Optional[str] = None
    receiver_bank_code: Optional[str] = None
    receiver_account_number: Optional[str] = None
    receiver_branch_code: Optional[str] = None
    receiver_account_type: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_tax_id: Optional[str] = None
    receiver_key_id: Optional[str] = None
    description: Optional[str] = None
    reconciliation_id: Optional[str] = None
    initiator_tax_id: Optional[str] = None
    cash_amount: Optional[int] = None
    cashier_bank_code: Optional[str] = None
    cashier_type: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    method: Optional[str] = None
    fee: Optional[int] = None
    status: Optional[str] = None
    flow: Optional[str] = None
    created: Optional[datetime] = None
    updated: Optional[datetime] = None


class PixRequestLog(ApiModel):
    """Generated by the API every time a PixRequest changes status."""

    id: str
    created: Optional[datetime] = None
    type: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    request: Optional[PixRequest] = None

    @field_validator("errors", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []


class Event(ApiModel):
    """A webhook delivery. ``log`` is decoded when the subscription is known."""

    id: str
    subscription: Optional[str] = None
    created: Optional[datetime] = None
    is_delivered: Optional[bool] = None
    workspace_id: Optional[str] = None
    log: Any = None

    @field_validator("log", mode="before")
    @classmethod
    def _decode_log(cls, value: Any, info: ValidationInfo) -> Any:
        subscription = (info.data or {}).get("subscription") or ""
        if isinstance(value, dict) and subscription.startswith("pix-request"):
            return PixRequestLog.model_validate(value)
        return value
