import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Pattern, Tuple
from loguru import logger

from app.state import PIIDetection, RiskLevel


class PIICategory(NamedTuple):
    name: str
    patterns: Tuple[Pattern[str], ...]
    risk_level: RiskLevel
    description: str


def _compile(*regexes: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(rx, re.IGNORECASE) for rx in regexes)


PII_CATALOG: Tuple[PIICategory, ...] = (
    PIICategory(
        "Social Security Number",
        _compile(r"\b\d{3}-\d{2}-\d{4}\b", r"\b\d{9}\b", r"\bssn\b", r"social.?security"),
        RiskLevel.HIGH,
        "Social Security Numbers detected",
    ),
    PIICategory(
        "Phone Number",
        _compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b", r"\(\d{3}\)\s?\d{3}[-.]?\d{4}", r"phone", r"mobile", r"contact.?number"),
        RiskLevel.MEDIUM,
        "Phone numbers detected",
    ),
    PIICategory(
        "Email Address",
        _compile(r"\b[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}\b", r"email", r"e.?mail"),
        RiskLevel.MEDIUM,
        "Email addresses detected",
    ),
    PIICategory(
        "Date of Birth",
        _compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b", r"\b\d{4}-\d{2}-\d{2}\b", r"birth.?date", r"\bdob\b", r"date.?of.?birth"),
        RiskLevel.HIGH,
        "Date of birth information detected",
    ),
    PIICategory(
        "Medical Record Number",
        _compile(r"\bmrn\b", r"medical.?record", r"patient.?id", r"chart.?number"),
        RiskLevel.HIGH,
        "Medical record numbers detected",
    ),
    PIICategory(
        "Insurance ID",
        _compile(r"insurance.?id", r"policy.?number", r"member.?id", r"subscriber.?id", r"group.?number"),
        RiskLevel.MEDIUM,
        "Insurance identification numbers detected",
    ),
    PIICategory(
        "Credit Card",
        _compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b", r"credit.?card", r"card.?number"),
        RiskLevel.HIGH,
        "Credit card numbers detected",
    ),
    PIICategory(
        "Driver License",
        _compile(r"driver.?licen[cs]e", r"dl.?number", r"licen[cs]e.?number"),
        RiskLevel.MEDIUM,
        "Driver license information detected",
    ),
    PIICategory(
        "Address",
        _compile(
            r"address",
            r"street",
            r"\b\d+\s+[a-z\s]+(?:street|st|avenue|ave|road|rd|drive|dr|lane|ln|boulevard|blvd)\b",
            r"zip.?code",
            r"postal.?code",
        ),
        RiskLevel.MEDIUM,
        "Address information detected",
    ),
    PIICategory(
        "Full Name",
        _compile(r"first.?name", r"last.?name", r"full.?name", r"patient.?name", r"subscriber.?name"),
        RiskLevel.MEDIUM,
        "Personal names detected",
    ),
)

TIER_RECOMMENDATIONS: Dict[RiskLevel, Tuple[str, ...]] = {
    RiskLevel.HIGH: (
        "Implement data encryption for sensitive fields",
        "Restrict access to authorized personnel only",
        "Consider data masking for non-production environments",
    ),
    RiskLevel.MEDIUM: (
        "Apply appropriate access controls",
        "Monitor data access and usage",
    ),
}

GENERAL_RECOMMENDATIONS = (
    "Ensure HIPAA compliance for healthcare data",
    "Implement audit logging for data access",
    "Regular security assessments recommended",
)

HEALTHCARE_CONTEXT_TERMS = ("medical", "patient", "health")
NO_PII_RECOMMENDATIONS = (
    "Verify no PII exists in actual data",
    "Maintain data security best practices",
)


class _Scan:
    """Accumulates findings for one file; risk only ever goes up."""

    def __init__(self):
        self.types: Dict[str, None] = {}
        self.fields: Dict[str, None] = {}
        self.recommendations: Dict[str, None] = {}
        self.risk = RiskLevel.LOW

    def record(self, category: PIICategory, header: Optional[str] = None):
        self.types[category.name] = None
        if header is not None:
            self.fields[header] = None
        if category.risk_level.rank > self.risk.rank:
            self.risk = category.risk_level
        self.recommend(TIER_RECOMMENDATIONS.get(category.risk_level, ()))

    def recommend(self, items: Iterable[str]):
        for item in items:
            self.recommendations[item] = None


def _content_blob(sample_rows: Iterable[Dict[str, Any]], raw_text: Optional[str]) -> str:
    values = [str(v) for row in sample_rows for v in row.values() if v is not None and v != ""]
    if raw_text:
        values.append(raw_text)
    return " ".join(values).lower()


def detect_pii(
    headers: List[str],
    sample_rows: Iterable[Dict[str, Any]] = (),
    raw_text: Optional[str] = None,
) -> PIIDetection:
    """Scan headers and content for personally identifiable information.

    Headers are tested one by one (lowercased) and matching ones are reported
    as detected fields. Sample values and raw text are joined into one
    lowercased blob and tested as a whole. The risk level is the highest risk
    of any category found, or Low when nothing is found.
    """
    scan = _Scan()

    for header in headers:
        header_lower = str(header).lower()
        for category in PII_CATALOG:
            if any(p.search(header_lower) for p in category.patterns):
                scan.record(category, header=header)

    content = _content_blob(sample_rows, raw_text)
    for category in PII_CATALOG:
        if any(p.search(content) for p in category.patterns):
            scan.record(category)

    if scan.types:
        scan.recommend(GENERAL_RECOMMENDATIONS)
        logger.info(f"PII detected ({scan.risk.value} risk): {list(scan.types)}")
    elif any(term in content or any(term in str(h).lower() for h in headers) for term in HEALTHCARE_CONTEXT_TERMS):
        scan.recommend(NO_PII_RECOMMENDATIONS)

    return PIIDetection(
        has_pii=bool(scan.types),
        pii_types=list(scan.types),
        risk_level=scan.risk if scan.types else RiskLevel.LOW,
        detected_fields=list(scan.fields),
        recommendations=list(scan.recommendations),
    )
