from loguru import logger
from app.state import PipelineState
from services.aggregator import build_report
from services.batch_validator import BatchValidator
from services.file_analysis import analyze_file
from services.pii_detector import detect_pii
from services.transformer import transform_records


class TransformNode:
    def __call__(self, state: PipelineState) -> PipelineState:
        """Enrich parsed records with type-specific rules.
        Args:
            state: Pipeline state with `parsed` records.
        Returns:
            Updated `PipelineState` with `transformed` populated, same order as `parsed.records`.
        """
        logger.info(f"Transforming {len(state.parsed.records)} records from {state.filename}")
        state.transformed = transform_records(state.parsed.records)
        return state


class ValidationNode:
    def __init__(self, validator: BatchValidator):
        self.validator = validator

    def __call__(self, state: PipelineState) -> PipelineState:
        """Validate transformed records through the LLM oracle.
        Args:
            state: Pipeline state with `transformed` records.
        Returns:
            Updated `PipelineState` with one entry in `results` per record.
        """
        logger.info(f"Validating {len(state.transformed)} records from {state.filename}")
        state.results = self.validator.validate_batch(state.transformed)
        return state


class PIIScanNode:
    def __call__(self, state: PipelineState) -> PipelineState:
        parsed = state.parsed
        state.pii = detect_pii(parsed.raw_headers, parsed.rows, parsed.raw_text)
        return state


class AnalysisNode:
    def __init__(self, llm_client=None):
        self.llm_client = llm_client

    def __call__(self, state: PipelineState) -> PipelineState:
        state.analysis = analyze_file(state.parsed, state.pii, self.llm_client)
        return state


class AggregationNode:
    def __call__(self, state: PipelineState) -> PipelineState:
        state.report = build_report(state.parsed, state.results, state.analysis)
        summary = state.report.summary
        logger.info(
            f"{state.filename}: {summary.total} results "
            f"({summary.valid} valid, {summary.warning} warning, {summary.invalid} invalid, "
            f"{summary.duplicates} duplicates)"
        )
        return state
