"""Domain models shared by the registry, parser, store and app layers."""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class Feed(BaseModel):
    """A subscribed feed source."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    url: str
    created_at: str
    last_fetched: str = ""
    last_error: str = ""


class ParsedEntry(BaseModel):
    """An entry normalized from an RSS item or Atom entry, not yet stored."""

    model_config = ConfigDict(frozen=True)

    ext_id: str = Field(min_length=1)
    title: str
    link: str = ""
    summary: str = ""
    published: str
    date_estimated: bool = False


class Entry(BaseModel):
    """A stored entry."""

    id: int
    feed_id: int
    feed: str = ""
    ext_id: str
    title: str
    link: str = ""
    summary: str = ""
    published: str
    date_estimated: bool = False
    read: bool = False


class FetchFailure(BaseModel):
    """One feed that failed inside a fetch-all batch."""

    feed_id: int
    url: str
    error: str
    code: str


class FetchReport(BaseModel):
    """Aggregate outcome of fetching one or more feeds."""

    inserted: int = 0
    fetched: int = 0
    failures: List[FetchFailure] = Field(default_factory=list)


class ImportReport(BaseModel):
    added: int = 0
    skipped: int = 0
    malformed: int = 0


def drop_none(payload: Any) -> Any:
    """Recursively remove ``None`` values so envelopes never carry nulls."""
    if isinstance(payload, dict):
        return {key: drop_none(value) for key, value in payload.items() if value is not None}
    if isinstance(payload, list):
        return [drop_none(item) for item in payload if item is not None]
    return payload


def dump(model: BaseModel) -> Dict[str, Any]:
    return drop_none(model.model_dump())
