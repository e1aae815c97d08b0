"""eCFR API payloads (versioner titles, admin agencies)."""
from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TitleInfo(BaseModel):
    """One entry of `/api/versioner/v1/titles`."""

    number: int = Field(ge=1)
    name: str = ""
    latest_amended_on: Optional[date] = None
    latest_issue_date: Optional[date] = None
    up_to_date_as_of: Optional[date] = None
    reserved: bool = False

    @field_validator("latest_amended_on", "latest_issue_date", "up_to_date_as_of", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class TitlesResponse(BaseModel):
    titles: list[TitleInfo] = Field(default_factory=list)


class CfrReference(BaseModel):
    title: Optional[int] = None
    chapter: Optional[str] = None
    subtitle: Optional[str] = None


class Agency(BaseModel):
    """Agency node from `/api/admin/v1/agencies.json`; children nest arbitrarily."""

    name: str
    short_name: Optional[str] = None
    display_name: str = ""
    sortable_name: str = ""
    slug: str
    children: list[Agency] = Field(default_factory=list)
    cfr_references: list[CfrReference] = Field(default_factory=list)


class AgenciesResponse(BaseModel):
    agencies: list[Agency] = Field(default_factory=list)
