"""Pydantic models for DOM mutation ops and executor results.

MutationOp is a discriminated union on `action`. Every variant requires
its selector and payload fields and rejects anything else, matching the
dom_replace tool schema the model is given.

Result models serialize with the camelCase keys the model sees in tool
results (model_dump(by_alias=True)).
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

InsertPosition = Literal["beforebegin", "afterbegin", "beforeend", "afterend"]


class _Op(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    selector: str


class SetText(_Op):
    action: Literal["set_text"] = "set_text"
    text: str


class SetHtml(_Op):
    action: Literal["set_html"] = "set_html"
    html: str


class ReplaceWithHtml(_Op):
    action: Literal["replace_with_html"] = "replace_with_html"
    html: str


class InsertHtml(_Op):
    action: Literal["insert_html"] = "insert_html"
    position: InsertPosition
    html: str


class SetAttr(_Op):
    action: Literal["set_attr"] = "set_attr"
    name: str
    value: str


class RemoveAttr(_Op):
    action: Literal["remove_attr"] = "remove_attr"
    name: str


class AddClass(_Op):
    action: Literal["add_class"] = "add_class"
    class_name: str = Field(alias="class")


class RemoveClass(_Op):
    action: Literal["remove_class"] = "remove_class"
    class_name: str = Field(alias="class")


class Remove(_Op):
    action: Literal["remove"] = "remove"


MutationOp = Annotated[
    Union[
        SetText, SetHtml, ReplaceWithHtml, InsertHtml, SetAttr,
        RemoveAttr, AddClass, RemoveClass, Remove,
    ],
    Field(discriminator="action"),
]

mutation_op_adapter: TypeAdapter[MutationOp] = TypeAdapter(MutationOp)


class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MutationDetail(_Result):
    action: str
    selector: str
    matched: int = 0
    applied: int = 0
    error: str | None = None


class MutationTotals(_Result):
    total_mutations: int = 0
    total_targets: int = 0
    total_applied: int = 0
    failed: int = 0


class MutationResult(_Result):
    status: Literal["edited"] = "edited"
    window_id: str | None = None
    name: str | None = None
    html: str
    totals: MutationTotals
    details: list[MutationDetail] = Field(default_factory=list)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
