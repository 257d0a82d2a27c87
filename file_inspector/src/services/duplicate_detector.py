from dataclasses import dataclass, field
from typing import Dict, List, Sequence
from loguru import logger

from app.records import RecordBase
from app.state import ValidationResult, ValidationStatus


@dataclass
class DuplicateIndex:
    """Duplicates found in one validation run.
    Attributes:
        groups: First-seen key -> keys of the later records repeating it.
        original_of: Record index -> key of the first occurrence, for repeats only.
    """
    groups: Dict[str, List[str]] = field(default_factory=dict)
    original_of: Dict[int, str] = field(default_factory=dict)

    def duplicate_of(self, index: int) -> str | None:
        return self.original_of.get(index)

    @property
    def count(self) -> int:
        return len(self.original_of)


def find_duplicates(records: Sequence[RecordBase]) -> DuplicateIndex:
    """Single pass over records in order; the first occurrence of a key is the original."""
    index = DuplicateIndex()
    seen: set[str] = set()

    for i, record in enumerate(records):
        key = (record.primary_key or "").strip()
        if not key:
            continue
        if key in seen:
            index.groups.setdefault(key, []).append(key)
            index.original_of[i] = key
        else:
            seen.add(key)

    if index.count:
        logger.info(f"Found {index.count} duplicate records across {len(index.groups)} keys")
    return index


def apply_duplicate_override(result: ValidationResult, duplicate_of: str | None) -> ValidationResult:
    """Mark a result as a duplicate.
    Severity only goes up: valid becomes warning, warning and invalid stay.
    """
    if not duplicate_of:
        return result
    status = ValidationStatus.WARNING if result.status == ValidationStatus.VALID else result.status
    return result.model_copy(update={"duplicate_of": duplicate_of, "status": status})
