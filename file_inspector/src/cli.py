import json
import traceback
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from loguru import logger
from config.settings import get_settings
from ingestion.file_loader import FileLoader
from services.vertex_client import build_llm_client
from services.export import results_to_csv
from services.notifier import NotificationError, SlackNotifier
from app.graph import build_inspection_graph
from app.state import ParsedFile, PipelineState


def _write_atomic(path: str, content: str) -> None:
    tmp_path = path + ".tmp"
    with open(tmp_path, "w") as f:
        f.write(content)
    os.replace(tmp_path, path)


def _process_one(filename: str, parsed: ParsedFile, graph, output_dir: str, notifier=None, channel: str = "") -> str:
    state = PipelineState(filename=filename, parsed=parsed)
    result = graph.invoke(state)

    # LangGraph returns a dict, convert to PipelineState for validation and serialization
    if isinstance(result, dict):
        result_state = PipelineState(**result)
    else:
        result_state = result

    report = result_state.report
    output_path = f"{output_dir}/{filename}.json"
    _write_atomic(output_path, json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))
    _write_atomic(f"{output_dir}/{filename}.csv", results_to_csv(report.results))

    if notifier:
        try:
            notifier.send(report.results, channel)
        except NotificationError as e:
            logger.error(f"{filename}: {e}")

    return output_path


def main():
    try:
        settings = get_settings()

        loader = FileLoader(settings.input_dir)
        files = loader.load_files()

        llm_client = build_llm_client(settings)
        graph = build_inspection_graph(llm_client, settings)

        notifier = None
        if settings.slack_webhook_url:
            notifier = SlackNotifier(settings.slack_webhook_url, settings.slack_token)

        os.makedirs(settings.output_dir, exist_ok=True)

        # Concurrent processing of files
        futures = []
        with ThreadPoolExecutor(max_workers=settings.workers) as ex:
            for filename, parsed in files.items():
                futures.append(ex.submit(
                    _process_one, filename, parsed, graph, settings.output_dir, notifier, settings.slack_channel
                ))

            for fut in as_completed(futures):
                try:
                    fut.result()
                except Exception as e:
                    print(f"Error: {e}")

    except Exception as e:
        print(f"Error: {e}")
        print(traceback.format_exc())
        raise e

if __name__ == "__main__":
    main()
