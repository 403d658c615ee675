from .mapper import DocumentIngestionMapper, extract_nodes, extract_relationships
from .models import Competency, LearningObjective, Procedure, ProcessingResult

__all__ = [
    "Competency",
    "DocumentIngestionMapper",
    "LearningObjective",
    "Procedure",
    "ProcessingResult",
    "extract_nodes",
    "extract_relationships",
]
