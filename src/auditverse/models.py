from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

NODE_TYPES: tuple[str, ...] = (
    "risk",
    "control",
    "audit",
    "issue",
    "incident",
    "standard",
    "businessUnit",
)
LINK_TYPES: tuple[str, ...] = (
    "mitigates",
    "assessed_by",
    "owned_by",
    "requires",
    "causes",
    "reports",
    "temporal",
)

# Document array key -> entity type tag.
DOCUMENT_NODE_ARRAYS: tuple[tuple[str, str], ...] = (
    ("risks", "risk"),
    ("controls", "control"),
    ("audits", "audit"),
    ("issues", "issue"),
    ("incidents", "incident"),
    ("standards", "standard"),
    ("businessUnits", "businessUnit"),
)


def _iso_string(value: Any) -> Any:
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    return value


class BaseNode(BaseModel):
    # Force-simulation coordinates (x, y, vx, ...) are renderer state and dropped here.
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    owner: str | None = None
    last_assessment: str | None = None
    confidence: float | None = None

    @field_validator("last_assessment", mode="before")
    @classmethod
    def coerce_last_assessment(cls, value: Any) -> Any:
        return _iso_string(value)


class RiskNode(BaseNode):
    type: Literal["risk"] = "risk"
    inherent_likelihood: float
    inherent_severity: float
    residual_likelihood: float
    residual_severity: float
    inherent_rating: float | None = None
    residual_rating: float | None = None
    category: str | None = None
    business_unit: str | None = None

    @model_validator(mode="after")
    def derive_ratings(self) -> RiskNode:
        if self.inherent_rating is None:
            self.inherent_rating = (self.inherent_likelihood + self.inherent_severity) / 2
        if self.residual_rating is None:
            self.residual_rating = (self.residual_likelihood + self.residual_severity) / 2
        return self


class ControlNode(BaseNode):
    type: Literal["control"] = "control"
    effectiveness: float = 0.7


class AuditNode(BaseNode):
    type: Literal["audit"] = "audit"
    date: str | None = None
    status: Literal["planned", "in_progress", "completed"] = "planned"

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _iso_string(value)


class IssueNode(BaseNode):
    type: Literal["issue"] = "issue"
    severity: Literal["low", "medium", "high"] = "medium"
    status: Literal["open", "resolved"] = "open"


class IncidentNode(BaseNode):
    type: Literal["incident"] = "incident"
    date: str | None = None
    impact: float = 5.0

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _iso_string(value)


class StandardNode(BaseNode):
    type: Literal["standard"] = "standard"
    framework: str | None = None


class BusinessUnitNode(BaseNode):
    type: Literal["businessUnit"] = "businessUnit"
    department: str | None = None


Entity = Annotated[
    Union[
        RiskNode,
        ControlNode,
        AuditNode,
        IssueNode,
        IncidentNode,
        StandardNode,
        BusinessUnitNode,
    ],
    Field(discriminator="type"),
]

ENTITY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Entity)


class Link(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    # Unrecognized relationship types are kept; encoding falls back to a neutral color.
    type: str = Field(min_length=1)


class ChangeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    date: str
    type: str
    entity_id: str = Field(alias="entityId")
    description: str | None = None
    related_ids: list[str] = Field(default_factory=list, alias="relatedIds")
    changes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _iso_string(value)


def parse_entity(payload: dict[str, Any]) -> BaseNode:
    return ENTITY_ADAPTER.validate_python(payload)
