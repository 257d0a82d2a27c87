import json
import re
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Pattern, Tuple
from loguru import logger

from app.state import DataQuality, FileAnalysis, ParsedFile, PIIDetection, TeamRecommendation
from services.errors import OracleError
from services.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt


class TriageRule(NamedTuple):
    team: str
    keywords: Tuple[str, ...]
    headers: Tuple[str, ...]
    patterns: Tuple[Pattern[str], ...]


def _compile(*regexes: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(rx, re.IGNORECASE) for rx in regexes)


TRIAGE_RULES: Tuple[TriageRule, ...] = (
    TriageRule(
        "Claims",
        ("claim", "billing", "invoice", "payment", "reimbursement", "copay", "deductible", "procedure", "diagnosis"),
        ("claim_id", "member_id", "billed_amount", "diagnosis_code", "procedure_code", "service_date", "provider_id"),
        _compile(r"claim", r"bill", r"invoice", r"icd", r"cpt", r"drg"),
    ),
    TriageRule(
        "Policy",
        ("policy", "member", "enrollment", "coverage", "benefit", "premium", "plan", "subscriber"),
        ("policy_id", "member_id", "policy_number", "enrollment_status", "plan_type", "coverage_limit", "premium"),
        _compile(r"policy", r"member", r"enrollment", r"coverage", r"benefit", r"plan"),
    ),
    TriageRule(
        "Medical Products",
        ("drug", "medication", "pharmaceutical", "prescription", "dosage", "strength", "formulary", "ndc"),
        ("drug_code", "drug_name", "ndc", "strength", "dosage", "atc_code", "formulary", "price"),
        _compile(r"drug", r"medication", r"pharma", r"prescription", r"ndc", r"atc"),
    ),
    TriageRule(
        "Provider",
        ("provider", "doctor", "physician", "hospital", "clinic", "facility", "license", "specialty"),
        ("provider_id", "provider_name", "npi", "license_number", "specialty", "facility", "address"),
        _compile(r"provider", r"doctor", r"physician", r"hospital", r"clinic", r"npi", r"license"),
    ),
)

DEFAULT_TEAM = "General"
MAX_TEAM_SCORE = 50
MAX_CONFIDENCE = 95.0
SAMPLE_ROWS = 5

FILE_FORMATS = {
    "csv": "CSV",
    "xlsx": "XLSX",
    "xls": "XLSX",
    "pdf": "PDF",
    "docx": "DOCX",
    "doc": "DOCX",
}


def detect_file_format(file_name: str) -> str:
    return FILE_FORMATS.get(Path(file_name).suffix.lower().lstrip("."), "Unknown")


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    size = float(size_bytes)
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2):g} {units[i]}"


def _matching_headers(rule: TriageRule, headers: List[str]) -> List[str]:
    headers_lower = [h.lower() for h in headers]
    return [expected for expected in rule.headers if any(expected in h for h in headers_lower)]


def _matching_keywords(rule: TriageRule, content: str) -> List[str]:
    content_lower = content.lower()
    return [k for k in rule.keywords if k in content_lower]


def team_score(rule: TriageRule, content: str, headers: List[str]) -> int:
    """Keywords in content +2, expected headers +5, patterns in content +3."""
    score = 2 * len(_matching_keywords(rule, content))
    score += 5 * len(_matching_headers(rule, headers))
    score += 3 * sum(1 for p in rule.patterns if p.search(content))
    return score


def recommend_team(content: str, headers: List[str]) -> TeamRecommendation:
    scored = [(team_score(rule, content, headers), rule) for rule in TRIAGE_RULES]
    # max() keeps the first rule on ties.
    score, rule = max(scored, key=lambda pair: pair[0])

    if score == 0:
        return TeamRecommendation(
            team=DEFAULT_TEAM,
            confidence=0.0,
            reasoning="No team-specific headers or keywords found; routing to the General team",
        )

    confidence = min(score / MAX_TEAM_SCORE * 100, MAX_CONFIDENCE)

    reasons = []
    headers_hit = _matching_headers(rule, headers)
    if headers_hit:
        reasons.append(f"matching headers ({', '.join(headers_hit[:3])})")
    keywords_hit = _matching_keywords(rule, content)
    if keywords_hit:
        reasons.append(f"content keywords ({', '.join(keywords_hit[:3])})")

    if reasons:
        reasoning = f"Recommended {rule.team} team based on " + " and ".join(reasons)
    else:
        reasoning = f"{rule.team} team appears most suitable for this content type"

    return TeamRecommendation(team=rule.team, confidence=round(confidence, 1), reasoning=reasoning)


def _is_filled(value: Any) -> bool:
    return value is not None and value != ""


def assess_data_quality(rows: List[Dict[str, Any]], headers: List[str]) -> DataQuality:
    if not rows:
        return DataQuality(completeness=0, consistency=0, issues=["No data found in file"])

    issues = []
    total_cells = 0
    filled_cells = 0
    consistent_cells = 0

    for header in headers:
        values = [row.get(header) for row in rows if _is_filled(row.get(header))]
        value_types = {type(v).__name__ for v in values}

        total_cells += len(rows)
        filled_cells += len(values)

        if len(value_types) <= 1:
            consistent_cells += len(rows)
        else:
            issues.append(f"Inconsistent data types in column: {header}")

        if len(values) < len(rows) * 0.8:
            missing = round((1 - len(values) / len(rows)) * 100)
            issues.append(f"High missing data rate in column: {header} ({missing}% missing)")

    completeness = filled_cells / total_cells * 100 if total_cells else 0
    consistency = consistent_cells / total_cells * 100 if total_cells else 0

    return DataQuality(completeness=round(completeness), consistency=round(consistency), issues=issues)


def _summarize_with_ai(llm_client, parsed: ParsedFile, file_format: str) -> Optional[Tuple[str, List[str]]]:
    prompt = build_analysis_prompt(parsed.filename, file_format, parsed.raw_headers, parsed.rows)
    try:
        reply = llm_client.generate_json(ANALYSIS_SYSTEM_PROMPT, prompt)
    except OracleError as e:
        logger.warning(f"AI analysis failed for {parsed.filename} ({e.kind.value}): {e}")
        return None
    if not isinstance(reply, dict):
        logger.warning(f"AI analysis for {parsed.filename} returned {type(reply).__name__}, expected an object")
        return None
    summary = reply.get("summary") or "Healthcare data file requiring validation"
    workflows = reply.get("workflows")
    workflows = [str(w) for w in workflows] if isinstance(workflows, list) else []
    return str(summary), workflows


def analyze_file(parsed: ParsedFile, pii: PIIDetection, llm_client=None) -> FileAnalysis:
    """Build the per-file analysis: metadata, team routing, data quality and PII."""
    file_format = detect_file_format(parsed.filename)
    sample = parsed.rows[:SAMPLE_ROWS]
    content = parsed.raw_text or json.dumps(parsed.rows, default=str)

    team = recommend_team(content, parsed.raw_headers)
    quality = assess_data_quality(parsed.rows, parsed.raw_headers)

    ai = _summarize_with_ai(llm_client, parsed, file_format) if llm_client else None
    if ai:
        content_summary, workflows = ai
    else:
        content_summary = (
            f"{file_format} file containing {len(parsed.raw_headers)} columns and "
            f"{len(parsed.rows)} rows of healthcare data"
        )
        workflows = [team.team.replace(" ", "_").lower()]

    logger.info(f"{parsed.filename}: routed to {team.team} ({team.confidence}% confidence)")

    return FileAnalysis(
        file_name=parsed.filename,
        file_format=file_format,
        file_size=format_file_size(parsed.size_bytes),
        headers=parsed.raw_headers,
        sample_data=sample,
        detected_type=parsed.file_type,
        content_summary=content_summary,
        recommended_team=team.team,
        confidence=team.confidence,
        reasoning=team.reasoning,
        suggested_workflows=workflows,
        data_quality=quality,
        pii_detection=pii,
    )
