"""Cost ledger entries and the attribution carried by provider calls."""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..enums import CostCenter


class Attribution(BaseModel):
    """Who a provider call is billed to."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str | None = Field(None, alias="userId")
    manuscript_id: str | None = Field(None, alias="manuscriptId")
    feature_name: str = Field(..., alias="featureName", min_length=1)
    operation: str = Field(..., min_length=1)

    def for_operation(self, operation: str, *, feature_name: str | None = None) -> "Attribution":
        return self.model_copy(
            update={"operation": operation, "feature_name": feature_name or self.feature_name}
        )


class CostEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str | None = Field(None, alias="userId")
    manuscript_id: str | None = Field(None, alias="manuscriptId")
    cost_center: CostCenter = Field(alias="costCenter")
    feature_name: str = Field(alias="featureName")
    operation: str
    cost_usd: float = Field(..., ge=0, alias="costUSD")
    input_tokens: int | None = Field(None, ge=0, alias="inputTokens")
    output_tokens: int | None = Field(None, ge=0, alias="outputTokens")
    model: str = ""
    created_at: float = Field(default_factory=time.time, alias="createdAt")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_attribution(
        cls,
        attribution: Attribution,
        *,
        cost_center: CostCenter,
        cost_usd: float,
        model: str,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "CostEntry":
        return cls(
            user_id=attribution.user_id,
            manuscript_id=attribution.manuscript_id,
            cost_center=cost_center,
            feature_name=attribution.feature_name,
            operation=attribution.operation,
            cost_usd=round(cost_usd, 6),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model,
            metadata=metadata or {},
        )


class CostSummaryRow(BaseModel):
    cost_center: CostCenter
    feature_name: str
    calls: int
    total_usd: float
