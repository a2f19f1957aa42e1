# FILE: emr_forms/schemas/emr_form.py
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SectionLayout(str, Enum):
    STACK = "STACK"
    GRID_2 = "GRID_2"
    GRID_3 = "GRID_3"
    GRID_4 = "GRID_4"


class FieldWidth(str, Enum):
    FULL = "FULL"
    HALF = "HALF"
    THIRD = "THIRD"
    QUARTER = "QUARTER"


RULE_OPS = {"eq", "ne", "truthy", "falsy", "in", "not_in", "exists"}

BOOLEAN_TYPES = {"boolean", "checkbox"}
LIST_TYPES = {"multiselect", "table"}
CHOICE_TYPES = {"select", "multiselect", "radio", "chips"}

FIELD_TYPES = {
    "text", "textarea", "number", "date", "time", "datetime",
    "boolean", "checkbox", "select", "multiselect", "radio", "chips",
    "table", "group", "signature", "file", "image",
    "calculation", "chart",
}


# -----------------------
# Template schema
# -----------------------
class Rule(BaseModel):
    """`op` is kept verbatim so an unknown operator can fail open at evaluation."""
    model_config = ConfigDict(extra="ignore")

    op: str = ""
    field_key: str = ""
    value: Any = None


class ItemRules(BaseModel):
    model_config = ConfigDict(extra="allow")

    visible_when: Optional[Rule] = None


class ItemUi(BaseModel):
    model_config = ConfigDict(extra="allow")

    hidden: bool = False
    width: Union[FieldWidth, int, float] = FieldWidth.FULL


class FieldOption(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: Any
    label: str


class _ItemBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str
    label: str
    required: bool = False
    ui: ItemUi = Field(default_factory=ItemUi)
    rules: ItemRules = Field(default_factory=ItemRules)

    def extra(self, name: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(name, default)


class FieldItem(_ItemBase):
    kind: Literal["field"] = "field"
    type: str = "text"
    default_value: Any = None
    options: Optional[List[FieldOption]] = None


class GroupItem(_ItemBase):
    kind: Literal["group"] = "group"
    type: Literal["group"] = "group"
    items: List[Item] = Field(default_factory=list)


Item = Annotated[Union[FieldItem, GroupItem], Field(discriminator="kind")]


class Section(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str
    label: str
    layout: SectionLayout = SectionLayout.STACK
    items: List[Item] = Field(default_factory=list)


class TemplateSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schema_version: int = 1
    title: Optional[str] = None
    sections: List[Section] = Field(default_factory=list)

    def as_raw(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def section(self, code: str) -> Optional[Section]:
        for s in self.sections:
            if s.code == code:
                return s
        return None


GroupItem.model_rebuild()
Section.model_rebuild()
TemplateSchema.model_rebuild()


# -----------------------
# Engine results
# -----------------------
class MissingField(BaseModel):
    section_key: str
    section_title: str
    field_key: str
    field_label: str
    path: List[str] = Field(default_factory=list)


class FillCount(BaseModel):
    filled: int = 0
    total: int = 0


class SectionProgress(FillCount):
    section_key: str
    section_title: str
    percent: int = 100


class SchemaSummary(BaseModel):
    sections: int = 0
    fields: int = 0
    groups: int = 0
    required: int = 0
    field_types: List[str] = Field(default_factory=list)
    schema_hash: str = ""
    warnings: List[str] = Field(default_factory=list)
