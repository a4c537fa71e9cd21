"""The originating request for one agent run."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field


class Requirement(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    title: str
    description: str = ""
    priority: Literal["high", "medium", "low"] = "medium"
    kind: Literal["functional", "non-functional"] = "functional"


class AgentRequest(BaseModel):
    """Product requirements the planner turns into a TaskPlan."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = Field(min_length=1)
    description: str = ""
    requirements: Tuple[Requirement, ...] = ()
    acceptance_criteria: Tuple[str, ...] = ()
    project_path: str = "."

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AgentRequest":
        """Load a request from a YAML or JSON document."""
        source = Path(path)
        text = source.read_text(encoding="utf-8")
        if source.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
        return cls.model_validate(data)


__all__ = ["AgentRequest", "Requirement"]
