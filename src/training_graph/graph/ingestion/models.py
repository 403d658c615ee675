from __future__ import annotations

from pydantic import BaseModel, Field


class LearningObjective(BaseModel):
    id: str
    description: str
    category: str = ""
    importance: float = 0.0
    related_regulations: list[str] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)


class Competency(BaseModel):
    id: str
    name: str
    description: str = ""
    assessment_criteria: list[str] = Field(default_factory=list)
    related_objectives: list[str] = Field(default_factory=list)


class Procedure(BaseModel):
    id: str
    name: str
    description: str = ""
    steps: list[str] = Field(default_factory=list)
    safety_considerations: list[str] = Field(default_factory=list)
    related_competencies: list[str] = Field(default_factory=list)


class ProcessingResult(BaseModel):
    """Structured extraction of one training document."""

    document_id: str
    learning_objectives: list[LearningObjective] = Field(default_factory=list)
    competencies: list[Competency] = Field(default_factory=list)
    procedures: list[Procedure] = Field(default_factory=list)
    # regulation name -> citation / reference text
    regulatory_mapping: dict[str, str] = Field(default_factory=dict)
    # entity type -> names
    entities: dict[str, list[str]] = Field(default_factory=dict)
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
