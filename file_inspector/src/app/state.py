from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.records import FileType, Record


class ValidationStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class ValidationResult(BaseModel):
    """Verdict for a single record.
    Attributes:
        code: Primary key of the validated record.
        status: valid / warning / invalid.
        coding_system: Coding system of the record, if known.
        issues: Problems found, in the order reported.
        recommendations: Suggested fixes, in the order reported.
        explanation: Natural-language explanation of the verdict.
        compliance_notes: Regulatory or billing notes.
        duplicate_of: Code of the first occurrence when this record repeats it.
        original_data: The record that was validated.
    """
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    code: str
    status: ValidationStatus
    coding_system: str | None = None
    issues: List[str] = []
    recommendations: List[str] = []
    explanation: str = ""
    compliance_notes: List[str] = []
    duplicate_of: str | None = Field(default=None, alias="duplicateOf")
    original_data: Record = Field(alias="originalData")


class PIIDetection(BaseModel):
    has_pii: bool = False
    pii_types: List[str] = []
    risk_level: RiskLevel = RiskLevel.LOW
    detected_fields: List[str] = []
    recommendations: List[str] = []


class DataQuality(BaseModel):
    completeness: int = 0
    consistency: int = 0
    issues: List[str] = []


class TeamRecommendation(BaseModel):
    team: str
    confidence: float
    reasoning: str


class FileAnalysis(BaseModel):
    file_name: str
    file_format: str
    file_size: str
    headers: List[str]
    sample_data: List[Dict[str, Any]] = []
    detected_type: FileType
    content_summary: str = ""
    recommended_team: str = "General"
    confidence: float = 0.0
    reasoning: str = ""
    suggested_workflows: List[str] = []
    data_quality: DataQuality = DataQuality()
    pii_detection: PIIDetection = PIIDetection()


class ValidationSummary(BaseModel):
    total: int = 0
    valid: int = 0
    warning: int = 0
    invalid: int = 0
    duplicates: int = 0


class ParsedFile(BaseModel):
    """A CSV/XLSX file after parsing, type detection and header normalization.
    Attributes:
        filename: Source filename.
        size_bytes: Size of the uploaded content.
        raw_headers: Column names as they appear in the file.
        headers: Canonical column names for `file_type`.
        file_type: Record type chosen by the type detector.
        rows: Cell values keyed by raw header, used for analysis and PII scans.
        records: Typed records, one per row with a non-empty primary key.
        dropped_rows: Rows skipped because their primary key was empty.
        raw_text: Optional free text attached to the file.
    """
    filename: str
    size_bytes: int = 0
    raw_headers: List[str] = []
    headers: List[str] = []
    file_type: FileType = FileType.MEDICAL
    rows: List[Dict[str, Any]] = []
    records: List[Record] = []
    dropped_rows: int = 0
    raw_text: str | None = None


class InspectionReport(BaseModel):
    filename: str
    file_type: FileType
    analysis: Optional[FileAnalysis] = None
    summary: ValidationSummary
    results: List[ValidationResult] = []


class PipelineState(BaseModel):
    """State object carried through the LangGraph pipeline.
    Attributes:
        filename: Source filename of the file being inspected.
        parsed: Parsed file with typed records.
        transformed: Records after type-specific enrichment.
        results: One validation result per transformed record, same order.
        pii: PII scan of headers, sample rows and raw text.
        analysis: File analysis including team routing and data quality.
        report: Display model assembled from everything above.
    """
    filename: str
    parsed: ParsedFile
    transformed: List[Record] = []
    results: List[ValidationResult] = []
    pii: Optional[PIIDetection] = None
    analysis: Optional[FileAnalysis] = None
    report: Optional[InspectionReport] = None
