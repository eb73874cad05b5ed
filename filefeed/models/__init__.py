"""Domain models for the filefeed import pipeline.

This package contains the schema, row and session models shared by the
mapping, transformation, validation and store modules.
"""

from .processing_result import FileStat, ProcessingResult, ReviewCounts
from .row_data import FieldMapping, ImportedData, ProcessedRow, ValidationFinding
from .schema import UNSET, Field, FieldType, SheetConfig, Severity, ValidationRule, WorkbookConfig
from .workbook_step import WorkbookStep

__all__ = [
    # Schema models
    "UNSET",
    "Field",
    "FieldType",
    "Severity",
    "SheetConfig",
    "ValidationRule",
    "WorkbookConfig",
    # Row models
    "FieldMapping",
    "ImportedData",
    "ProcessedRow",
    "ValidationFinding",
    # Session models
    "FileStat",
    "ProcessingResult",
    "ReviewCounts",
    "WorkbookStep",
]
