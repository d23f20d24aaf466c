from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from hallcup.models.bracket_state import BracketState


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    locale: str = Field(default="en")
    status: str = Field(default="success")  # "success" | "partial"
    config_json: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    schedule_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    summary_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    bracket_state: Optional["BracketState"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"uselist": False}
    )
