from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Sequence
from loguru import logger
from pydantic import BaseModel, BeforeValidator, ConfigDict, StrictInt, ValidationError

from app.records import FileType, RecordBase
from app.state import ValidationResult, ValidationStatus
from services.duplicate_detector import apply_duplicate_override, find_duplicates
from services.errors import OracleError, OracleErrorKind
from services.prompts import build_batch_prompt, system_instruction
from services.retry import Failure, RetryPolicy, retry_with_backoff

DEFAULT_BATCH_SIZE = 10


class BatchState(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    RATE_LIMITED = "rate_limited"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# issues, explanation; "{message}" is replaced with the oracle's error message.
FAILURE_MESSAGES: Dict[OracleErrorKind, tuple] = {
    OracleErrorKind.RATE_LIMITED: (
        ["Rate limit exceeded - please wait before trying again"],
        "Rate limit reached. Please try again in a few moments.",
    ),
    OracleErrorKind.AUTH_FAILURE: (
        ["API authentication error"],
        "API authentication failed. Please check your Vertex AI credentials configuration.",
    ),
    OracleErrorKind.CONNECTION_ERROR: (
        ["Connection error - please check your internet connection"],
        "Unable to connect to the validation service. Please check your internet connection.",
    ),
    OracleErrorKind.TIMEOUT: (
        ["Request timeout - please try again"],
        "The request to the validation service timed out. Please try again.",
    ),
    OracleErrorKind.MALFORMED_RESPONSE: (
        ["Invalid response format from AI validation"],
        "The validation service returned a response that could not be read.",
    ),
    OracleErrorKind.MISSING_RESULT: (
        ["No result returned for this entry"],
        "The validation service did not return a result for this entry.",
    ),
    OracleErrorKind.GENERIC: (
        ["API error: {message}"],
        "Validation service error: {message}",
    ),
}

RETRY_RECOMMENDATION = "Try validating again or check the code manually"


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _none_to_str(value: Any) -> Any:
    return "" if value is None else value


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class OracleResultItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: StrictInt
    status: Annotated[ValidationStatus, BeforeValidator(_lower)]
    issues: Annotated[List[str], BeforeValidator(_none_to_list)] = []
    recommendations: Annotated[List[str], BeforeValidator(_none_to_list)] = []
    explanation: Annotated[str, BeforeValidator(_none_to_str)] = ""
    compliance_notes: Annotated[List[str], BeforeValidator(_none_to_list)] = []


class OracleBatchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: List[OracleResultItem]


def _malformed(reason: str) -> OracleError:
    return OracleError(f"Invalid response format from AI validation: {reason}", kind=OracleErrorKind.MALFORMED_RESPONSE)


def parse_batch_response(raw: Any, batch_size: int) -> Dict[int, OracleResultItem]:
    """Validate an oracle reply and index its items by batch-local index.

    Raises OracleError(MALFORMED_RESPONSE) on schema errors, more items than
    the batch holds, or duplicate or out-of-range indices. Missing indices are
    allowed; the caller fills them in.
    """
    try:
        response = OracleBatchResponse.model_validate(raw)
    except ValidationError as e:
        raise _malformed(f"{e.error_count()} schema errors") from e

    if len(response.results) > batch_size:
        raise _malformed(f"{len(response.results)} results for {batch_size} entries")

    by_index: Dict[int, OracleResultItem] = {}
    for item in response.results:
        if not 0 <= item.index < batch_size:
            raise _malformed(f"index {item.index} out of range")
        if item.index in by_index:
            raise _malformed(f"index {item.index} returned twice")
        by_index[item.index] = item
    return by_index


def _coding_system(record: RecordBase) -> str | None:
    return getattr(record, "coding_system", None)


def failure_result(record: RecordBase, error: OracleError) -> ValidationResult:
    issues, explanation = FAILURE_MESSAGES[error.kind]
    message = str(error)
    return ValidationResult(
        code=record.primary_key,
        status=ValidationStatus.INVALID,
        coding_system=_coding_system(record),
        issues=[i.format(message=message) for i in issues],
        recommendations=[RETRY_RECOMMENDATION],
        explanation=explanation.format(message=message),
        compliance_notes=[],
        original_data=record,
    )


def _result_from_item(record: RecordBase, item: OracleResultItem) -> ValidationResult:
    return ValidationResult(
        code=record.primary_key,
        status=item.status,
        coding_system=_coding_system(record),
        issues=item.issues,
        recommendations=item.recommendations,
        explanation=item.explanation,
        compliance_notes=item.compliance_notes,
        original_data=record,
    )


class BatchValidator:
    """Validates records through the LLM oracle in fixed-size batches.

    Every record gets exactly one result, in input order. Oracle failures are
    contained per batch and turned into `invalid` results for that batch.
    """

    def __init__(
        self,
        llm_client,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.llm_client = llm_client
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()

    def validate_batch(self, records: Sequence[RecordBase]) -> List[ValidationResult]:
        records = list(records)
        if not records:
            return []

        file_types = {FileType(r.file_type) for r in records}
        if len(file_types) > 1:
            raise ValueError(f"Records of one validation run must share a file type, got {sorted(t.value for t in file_types)}")
        file_type = file_types.pop()

        duplicates = find_duplicates(records)

        results: List[ValidationResult] = []
        for number, start in enumerate(range(0, len(records), self.batch_size), start=1):
            chunk = records[start:start + self.batch_size]
            results.extend(self._validate_chunk(file_type, number, chunk))

        logger.info(f"Validated {len(records)} {file_type.value} records in {number} batches")
        return [apply_duplicate_override(r, duplicates.duplicate_of(i)) for i, r in enumerate(results)]

    def _validate_chunk(self, file_type: FileType, number: int, chunk: List[RecordBase]) -> List[ValidationResult]:
        label = f"batch {number}"
        logger.debug(f"{label}: {BatchState.PENDING.value} ({len(chunk)} records)")

        if self.llm_client is None:
            error = OracleError("Validation service is not configured", kind=OracleErrorKind.GENERIC)
            return self._failed(label, chunk, error, attempts=0)

        system = system_instruction(file_type)
        prompt = build_batch_prompt(file_type, [r.fields() for r in chunk])

        def send():
            logger.debug(f"{label}: {BatchState.SENDING.value}")
            raw = self.llm_client.generate_json(system, prompt)
            return parse_batch_response(raw, len(chunk))

        def on_backoff(attempt: int, delay: float, error: OracleError):
            logger.info(f"{label}: {BatchState.RATE_LIMITED.value} -> {BatchState.BACKOFF.value} for {delay:.1f}s after attempt {attempt}")

        outcome = retry_with_backoff(send, self.retry_policy, on_backoff=on_backoff)
        if isinstance(outcome, Failure):
            return self._failed(label, chunk, outcome.error, attempts=outcome.attempts)

        by_index = outcome.value
        results = []
        for i, record in enumerate(chunk):
            item = by_index.get(i)
            if item is None:
                logger.warning(f"{label}: no result returned for index {i} ({record.primary_key})")
                missing = OracleError("No result returned for this entry", kind=OracleErrorKind.MISSING_RESULT)
                results.append(failure_result(record, missing))
            else:
                results.append(_result_from_item(record, item))

        logger.info(f"{label}: {BatchState.SUCCEEDED.value} after {outcome.attempts} attempt(s)")
        return results

    def _failed(self, label: str, chunk: List[RecordBase], error: OracleError, attempts: int) -> List[ValidationResult]:
        logger.error(f"{label}: {BatchState.FAILED.value} ({error.kind.value}) after {attempts} attempt(s): {error}")
        return [failure_result(record, error) for record in chunk]
