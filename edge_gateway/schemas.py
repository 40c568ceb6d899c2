from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from edge_gateway.signing import EXPIRY_PARAM, REGION_PARAM, SIGNATURE_PARAM

_DECIMAL = re.compile(r"[0-9]+")


class SignedParams(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    signature: str = Field(alias=SIGNATURE_PARAM)
    expiry: int = Field(alias=EXPIRY_PARAM)
    region: str | None = Field(default=None, alias=REGION_PARAM)

    @field_validator("expiry", mode="before")
    @classmethod
    def _decimal_expiry(cls, value: object) -> int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and _DECIMAL.fullmatch(value):
            return int(value)
        raise ValueError("expiry must be decimal seconds since epoch")
