"""Pydantic result models for the window tools (camelCase on the wire)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreateWindowResult(_Result):
    status: Literal["created", "renamed"]
    name: str
    final_name: str
    window_id: str
    node_id: str


class TitleResult(_Result):
    status: Literal["updated"] = "updated"
    window_id: str
    title: str


class SetHtmlResult(_Result):
    status: Literal["set"] = "set"
    window_id: str
    markup_length: int


class WindowSummary(_Result):
    window_id: str
    title: str
    markup_length: int
    focused: bool = False
    previewing: bool = False
    markup: str | None = None
    preview_markup: str | None = None
