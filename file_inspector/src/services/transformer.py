import re
from typing import NamedTuple, Pattern, Tuple
from loguru import logger

from app.records import DrugRecord, FileType, MedicalRecord, PolicyRecord, RecordBase


class CodingRule(NamedTuple):
    pattern: Pattern[str]
    tag: str
    description: str


# Tried in order; the first matching rule decides the coding system.
MEDICAL_CODE_RULES: Tuple[CodingRule, ...] = (
    CodingRule(re.compile(r"^[A-Z]\d{2}(\.\d+)?$"), "ICD-10", "International Classification of Diseases, 10th Revision"),
    CodingRule(re.compile(r"^\d{5}$"), "CPT", "Current Procedural Terminology"),
    CodingRule(re.compile(r"^\d{3}$"), "DRG", "Diagnosis Related Group"),
)

DRUG_CODE_RULES: Tuple[CodingRule, ...] = (
    CodingRule(re.compile(r"^[A-Z]\d{2}[A-Z]{2}\d{2}$"), "ATC", "Anatomical Therapeutic Chemical Classification"),
    CodingRule(re.compile(r"^[A-Z]{2}\d{6}$"), "NDC", "National Drug Code"),
)

# Only the first category whose keywords appear in the description sets coverage.
COVERAGE_KEYWORDS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("emergency", "urgent"), "Emergency"),
    (("preventive", "screening"), "Preventive"),
    (("chronic", "ongoing"), "Chronic Care"),
)

CHRONIC_KEYWORDS = ("chronic", "maintenance")
UCR_BENCHMARK_MARKUP = 1.2


def _match_rule(code: str, rules: Tuple[CodingRule, ...]) -> CodingRule | None:
    for rule in rules:
        if rule.pattern.match(code):
            return rule
    return None


def transform_medical_code(record: MedicalRecord) -> MedicalRecord:
    updates = {}

    if not record.coding_system:
        rule = _match_rule(record.medical_code, MEDICAL_CODE_RULES)
        if rule:
            updates["coding_system"] = rule.tag
            updates["tag"] = record.tag or rule.description

    description = (record.description or "").lower()
    for keywords, coverage in COVERAGE_KEYWORDS:
        if any(k in description for k in keywords):
            updates["coverage"] = coverage
            break

    return record.model_copy(update=updates)


def transform_drug_code(record: DrugRecord) -> DrugRecord:
    updates = {}

    if not record.atc_code:
        rule = _match_rule(record.drug_code, DRUG_CODE_RULES)
        if rule:
            updates["coding_system"] = rule.tag

    drug_name = (record.drug_name or "").lower()
    drug_type = (record.drug_type or "").lower()
    if any(k in drug_name for k in CHRONIC_KEYWORDS) or "chronic" in drug_type:
        updates["chronic_indicator"] = "Y"

    price = record.price
    if not record.ucr_benchmark and isinstance(price, (int, float)) and price:
        updates["ucr_benchmark"] = price * UCR_BENCHMARK_MARKUP

    return record.model_copy(update=updates)


def _standardize_policy_type(value: str | None) -> str | None:
    text = (value or "").lower()
    if "individual" in text or text == "single":
        return "Individual"
    if "family" in text or "group" in text:
        return "Family"
    if "corporate" in text or "business" in text:
        return "Corporate"
    return value


def _standardize_policy_status(value: str | None) -> str | None:
    text = (value or "").lower()
    if "active" in text or text == "current":
        return "Active"
    if "pending" in text or text == "wait":
        return "Pending"
    if "expired" in text or text == "terminated":
        return "Expired"
    return value


def transform_policy(record: PolicyRecord) -> PolicyRecord:
    return record.model_copy(update={
        "policy_type": _standardize_policy_type(record.policy_type),
        "status": _standardize_policy_status(record.status),
    })


def transform_record(record: RecordBase) -> RecordBase:
    """Return an enriched copy of `record`; the input is never modified."""
    file_type = FileType(record.file_type)
    if file_type == FileType.MEDICAL:
        return transform_medical_code(record)
    if file_type == FileType.DRUG:
        return transform_drug_code(record)
    if file_type == FileType.POLICY:
        return transform_policy(record)
    return record.model_copy()


def transform_records(records):
    transformed = [transform_record(r) for r in records]
    logger.debug(f"Transformed {len(transformed)} records")
    return transformed
