"""Typed shapes of the published index, the history file and the delta."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Lifecycle = Literal["new", "continuing"]


class CatalogEntity(BaseModel):
    """A scraped catalog record.

    Only the asset fields and the lifecycle tag are known to this package;
    everything else the scraper produced is kept verbatim.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="allow", populate_by_name=True)

    ticket_image_url: Optional[str] = Field(default=None, alias="ticketImageUrl")
    odds_image_url: Optional[str] = Field(default=None, alias="oddsImageUrl")
    lifecycle: Optional[Lifecycle] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DeltaCounts(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    new: int = 0
    continuing: int = 0
    ended: int = 0
    index: int = 0


class Delta(BaseModel):
    """Identity diff between the previous and the current snapshot."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    new: List[str] = Field(default_factory=list)
    continuing: List[str] = Field(default_factory=list)
    ended: List[str] = Field(default_factory=list)
    counts: DeltaCounts = Field(default_factory=DeltaCounts)


class PublishedIndex(BaseModel):
    """``index.json`` as written by the reconciler."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="allow", populate_by_name=True)

    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    count: int = 0
    delta_index: Optional[Delta] = Field(default=None, alias="deltaIndex")
    entities: List[Dict[str, Any]] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HistoryFile(BaseModel):
    """``index.merged.json``: every entity ever published, latest values."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="allow", populate_by_name=True)

    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    count: int = 0
    entities: List[Dict[str, Any]] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
