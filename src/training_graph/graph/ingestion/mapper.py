"""
Maps a document's structured extraction onto graph nodes and relationships.

Ingestion is best effort: a node or relationship that fails to create is
logged and skipped, and the batch continues.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from ..models import KnowledgeNode, KnowledgeRelationship, RelationshipType
from .models import ProcessingResult

if TYPE_CHECKING:
    from ..engine import KnowledgeGraphEngine

logger = logging.getLogger(__name__)

LEARNING_OBJECTIVE = "LearningObjective"
COMPETENCY = "Competency"
PROCEDURE = "Procedure"
REGULATION = "Regulation"
ENTITY = "Entity"
DOCUMENT = "Document"

LIST_SEPARATOR = ";"


def _regulation_names(result: ProcessingResult) -> List[str]:
    """Distinct regulation names: mapping keys first, then ones only objectives cite."""
    names: List[str] = []
    seen: Set[str] = set()
    candidates = list(result.regulatory_mapping)
    for objective in result.learning_objectives:
        candidates.extend(objective.related_regulations)
    for name in candidates:
        if name and name not in seen:
            seen.add(name)
            names.append(name)
    return names


def extract_nodes(result: ProcessingResult) -> List[KnowledgeNode]:
    doc_id = result.document_id
    nodes: List[KnowledgeNode] = []

    for objective in result.learning_objectives:
        tags = ["learning_objective"] + ([objective.category] if objective.category else [])
        nodes.append(
            KnowledgeNode(
                label=objective.description,
                type=LEARNING_OBJECTIVE,
                confidence=0.9,
                source_document_id=doc_id,
                properties={
                    "id": objective.id,
                    "category": objective.category,
                    "importance": f"{objective.importance:g}",
                },
                tags=tags,
            )
        )

    for competency in result.competencies:
        nodes.append(
            KnowledgeNode(
                label=competency.name,
                type=COMPETENCY,
                confidence=0.85,
                source_document_id=doc_id,
                properties={
                    "id": competency.id,
                    "description": competency.description,
                    "assessmentCriteria": LIST_SEPARATOR.join(competency.assessment_criteria),
                },
                tags=["competency"],
            )
        )

    for procedure in result.procedures:
        nodes.append(
            KnowledgeNode(
                label=procedure.name,
                type=PROCEDURE,
                confidence=0.9,
                source_document_id=doc_id,
                properties={
                    "id": procedure.id,
                    "description": procedure.description,
                    "steps": LIST_SEPARATOR.join(procedure.steps),
                    "safetyConsiderations": LIST_SEPARATOR.join(procedure.safety_considerations),
                },
                tags=["procedure"],
            )
        )

    for n, name in enumerate(_regulation_names(result), start=1):
        props = {"id": f"REG-{n}"}
        citation = result.regulatory_mapping.get(name)
        if citation:
            props["citation"] = citation
        nodes.append(
            KnowledgeNode(
                label=name,
                type=REGULATION,
                confidence=0.95,
                source_document_id=doc_id,
                properties=props,
                tags=["regulation"],
            )
        )

    for entity_type, values in result.entities.items():
        for value in values:
            nodes.append(
                KnowledgeNode(
                    label=value,
                    type=ENTITY,
                    confidence=0.8,
                    source_document_id=doc_id,
                    properties={"entityType": entity_type},
                    tags=["entity", entity_type],
                )
            )

    nodes.append(
        KnowledgeNode(
            label=f"Document: {doc_id}",
            type=DOCUMENT,
            confidence=1.0,
            source_document_id=doc_id,
            properties={"id": doc_id},
            summary=result.summary or None,
            tags=["document"] + list(result.tags),
        )
    )
    return nodes


def _edge(
    source: str,
    target: str,
    rel_type: RelationshipType,
    label: str,
    strength: float,
    doc_id: str,
) -> KnowledgeRelationship:
    return KnowledgeRelationship(
        source_node_id=source,
        target_node_id=target,
        type=rel_type,
        label=label,
        strength=strength,
        confidence=strength,
        source_document_id=doc_id,
    )


def extract_relationships(result: ProcessingResult, created: List[KnowledgeNode]) -> List[KnowledgeRelationship]:
    """Relationships among ``created`` nodes only; references to nodes that failed are dropped."""
    doc_id = result.document_id
    objectives: Dict[str, str] = {}
    competencies: Dict[str, str] = {}
    procedures: Dict[str, str] = {}
    regulations: Dict[str, str] = {}
    document_node: Optional[str] = None

    for node in created:
        if node.type == LEARNING_OBJECTIVE and "id" in node.properties:
            objectives[node.properties["id"]] = node.id
        elif node.type == COMPETENCY and "id" in node.properties:
            competencies[node.properties["id"]] = node.id
        elif node.type == PROCEDURE and "id" in node.properties:
            procedures[node.properties["id"]] = node.id
        elif node.type == REGULATION:
            regulations[node.label] = node.id
        elif node.type == DOCUMENT:
            document_node = node.id

    rels: List[KnowledgeRelationship] = []

    for objective in result.learning_objectives:
        objective_node = objectives.get(objective.id)
        if objective_node is None:
            continue
        for name in objective.related_regulations:
            if name in regulations:
                rels.append(_edge(objective_node, regulations[name], RelationshipType.REGULATORY, "COMPLIES_WITH", 0.9, doc_id))
        for prereq in objective.prerequisites:
            if prereq in objectives:
                rels.append(_edge(objectives[prereq], objective_node, RelationshipType.SEQUENTIAL, "PREREQUISITE_FOR", 0.85, doc_id))
        if document_node:
            rels.append(_edge(document_node, objective_node, RelationshipType.HIERARCHICAL, "CONTAINS", 1.0, doc_id))

    for competency in result.competencies:
        competency_node = competencies.get(competency.id)
        if competency_node is None:
            continue
        for objective_id in competency.related_objectives:
            if objective_id in objectives:
                rels.append(_edge(competency_node, objectives[objective_id], RelationshipType.TRAINING, "ASSESSES", 0.8, doc_id))
        if document_node:
            rels.append(_edge(document_node, competency_node, RelationshipType.HIERARCHICAL, "CONTAINS", 1.0, doc_id))

    for procedure in result.procedures:
        procedure_node = procedures.get(procedure.id)
        if procedure_node is None:
            continue
        for competency_id in procedure.related_competencies:
            if competency_id in competencies:
                rels.append(_edge(procedure_node, competencies[competency_id], RelationshipType.TRAINING, "DEMONSTRATES", 0.85, doc_id))
        if document_node:
            rels.append(_edge(document_node, procedure_node, RelationshipType.HIERARCHICAL, "CONTAINS", 1.0, doc_id))

    return rels


class DocumentIngestionMapper:
    """Drives batched creation for one extraction result at a time.

    Tracks processed document ids in memory; the set does not survive a restart.
    """

    def __init__(self, engine: "KnowledgeGraphEngine"):
        self.engine = engine
        self._processed: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def is_processed(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._processed

    def process(self, result: ProcessingResult) -> Tuple[int, int]:
        doc_id = result.document_id
        with self._lock:
            if doc_id in self._processed or doc_id in self._in_flight:
                logger.info(f"Document already processed: {doc_id}")
                return 0, 0
            self._in_flight.add(doc_id)

        try:
            created: List[KnowledgeNode] = []
            for node in extract_nodes(result):
                res = self.engine.create_node(node)
                if not res.success:
                    logger.warning(f"Failed to create node '{node.label}': {res.error}")
                    continue
                node.id = res.data
                created.append(node)

            rel_count = 0
            for rel in extract_relationships(result, created):
                res = self.engine.create_relationship(rel)
                if not res.success:
                    logger.warning(f"Failed to create relationship {rel.label}: {res.error}")
                    continue
                rel_count += 1

            with self._lock:
                self._processed.add(doc_id)
            logger.info(f"Processed document {doc_id}: {len(created)} nodes, {rel_count} relationships")
            return len(created), rel_count
        finally:
            with self._lock:
                self._in_flight.discard(doc_id)
