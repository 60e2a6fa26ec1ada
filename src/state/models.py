from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Task(BaseModel):
    """
    One schedulable unit drawn on the chart timeline.

    Fields
    - id: stable task identifier.
    - name: label shown on the bar.
    - start / end: ISO dates (or any values the renderer understands).
    - owner: key into the owners directory. Unknown keys are tolerated.

    Notes
    - Extra fields are kept as-is and handed to the renderer unmodified.
    - AppState stores tasks as the plain decoded JSON objects; this model
      documents the conventional fields and builds the default dataset.
    """

    model_config = ConfigDict(extra="allow")

    id: int | str
    name: str
    start: Optional[str] = None
    end: Optional[str] = None
    owner: Optional[str] = None


class OwnerInfo(BaseModel):
    """An owners-directory record: a display name and an optional avatar URL."""

    model_config = ConfigDict(extra="allow")

    name: str
    avatar: Optional[str] = Field(default=None, description="Image URL for the owner avatar")


class AppState(BaseModel):
    """
    The canonical application state.

    - tasks: ordered list of task objects.
    - owners: mapping of owner key to owner record.

    Instances are frozen: edits produce a new AppState (usually through
    `model_copy(update=...)`), so every reader sees either the old or the new
    value, never a mix.
    """

    model_config = ConfigDict(frozen=True)

    tasks: List[Any] = Field(default_factory=list)
    owners: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_records(cls, tasks: List[Task], owners: Dict[str, OwnerInfo]) -> "AppState":
        """Build a state from typed records, dropping unset optional fields."""
        return cls(
            tasks=[t.model_dump(exclude_none=True) for t in tasks],
            owners={k: o.model_dump(exclude_none=True) for k, o in owners.items()},
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"tasks": self.tasks, "owners": self.owners}
