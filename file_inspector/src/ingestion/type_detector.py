from types import MappingProxyType
from typing import Iterable, List, Mapping, Tuple
from loguru import logger

from app.records import FileType
from ingestion.header_normalizer import matches_field

# Canonical fields that must all be present for a file to qualify as the type.
REQUIRED_FIELDS: Mapping[FileType, Tuple[str, ...]] = MappingProxyType({
    FileType.MEDICAL: ("medical_code",),
    FileType.DRUG: ("drug_code", "drug_name"),
    FileType.POLICY: ("policy_id", "policy_name"),
    FileType.CLINICIAN: ("clinician_id", "last_name"),
    FileType.PROVIDER: ("provider_id", "provider_name"),
    FileType.INTERMEDIARY: ("intermediary_id", "intermediary_name"),
})

# Tie-break order when several types qualify. Medical has the loosest patterns
# ("code") so it is tried last; it is also the fallback.
DETECTION_PRIORITY: Tuple[FileType, ...] = (
    FileType.DRUG,
    FileType.POLICY,
    FileType.CLINICIAN,
    FileType.PROVIDER,
    FileType.INTERMEDIARY,
    FileType.MEDICAL,
)

DEFAULT_FILE_TYPE = FileType.MEDICAL


def matched_required_fields(headers: Iterable[str], file_type: FileType) -> List[str]:
    """Required fields of `file_type` with at least one matching header."""
    headers = list(headers)
    return [
        field
        for field in REQUIRED_FIELDS[file_type]
        if any(matches_field(h, file_type, field) for h in headers)
    ]


def qualifying_types(headers: Iterable[str]) -> List[FileType]:
    headers = list(headers)
    return [
        file_type
        for file_type in DETECTION_PRIORITY
        if len(matched_required_fields(headers, file_type)) == len(REQUIRED_FIELDS[file_type])
    ]


def detect_file_type(headers: Iterable[str]) -> FileType:
    """Classify a file from its headers.

    A type qualifies only when all of its required fields are matched. The
    first qualifying type in DETECTION_PRIORITY wins; medical is the default.
    """
    candidates = qualifying_types(headers)
    if not candidates:
        logger.debug(f"No record type qualified; defaulting to {DEFAULT_FILE_TYPE.value}")
        return DEFAULT_FILE_TYPE
    if len(candidates) > 1:
        logger.debug(f"Several record types qualified {[c.value for c in candidates]}; using {candidates[0].value}")
    return candidates[0]
