from typing import List, Optional

from app.state import FileAnalysis, InspectionReport, ParsedFile, ValidationResult, ValidationStatus, ValidationSummary


def summarize(results: List[ValidationResult]) -> ValidationSummary:
    return ValidationSummary(
        total=len(results),
        valid=sum(1 for r in results if r.status == ValidationStatus.VALID),
        warning=sum(1 for r in results if r.status == ValidationStatus.WARNING),
        invalid=sum(1 for r in results if r.status == ValidationStatus.INVALID),
        duplicates=sum(1 for r in results if r.duplicate_of),
    )


def build_report(
    parsed: ParsedFile,
    results: List[ValidationResult],
    analysis: Optional[FileAnalysis] = None,
) -> InspectionReport:
    """Merge validation, duplicate and PII findings into the display model."""
    return InspectionReport(
        filename=parsed.filename,
        file_type=parsed.file_type,
        analysis=analysis,
        summary=summarize(results),
        results=results,
    )
