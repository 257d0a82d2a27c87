from langgraph.graph import StateGraph, END
from app.state import PipelineState
from app.nodes import AggregationNode, AnalysisNode, PIIScanNode, TransformNode, ValidationNode
from services.batch_validator import BatchValidator
from services.retry import RetryPolicy
from services.vertex_client import build_llm_client
from config.settings import get_settings


def build_graph(transform_node, validate_node, pii_node, analysis_node, aggregate_node):

    graph = StateGraph(PipelineState)
    graph.add_node("transform", transform_node)
    graph.add_node("validate", validate_node)
    graph.add_node("pii_scan", pii_node)
    graph.add_node("analyze", analysis_node)
    graph.add_node("aggregate", aggregate_node)

    graph.set_entry_point("transform")
    graph.add_edge("transform", "validate")
    graph.add_edge("validate", "pii_scan")
    graph.add_edge("pii_scan", "analyze")
    graph.add_edge("analyze", "aggregate")
    graph.add_edge("aggregate", END)

    return graph.compile()


def build_inspection_graph(llm_client, settings):
    validator = BatchValidator(
        llm_client,
        batch_size=settings.batch_size,
        retry_policy=RetryPolicy(max_attempts=settings.max_attempts, initial_delay=settings.initial_delay),
    )
    return build_graph(
        TransformNode(),
        ValidationNode(validator),
        PIIScanNode(),
        AnalysisNode(llm_client),
        AggregationNode(),
    )


# Dev UI–compatible wrapper
def _build_default_graph():
    settings = get_settings()

    # Initialize Vertex client only if creds are configured; otherwise validation reports it as unconfigured
    llm_client = None
    try:
        llm_client = build_llm_client(settings)
    except (ValueError, FileNotFoundError):
        # Safe fallback for local dev without valid GCP creds
        llm_client = None

    return build_inspection_graph(llm_client, settings)


# This is what LangGraph Dev UI looks for
graph = _build_default_graph()
