import json
import pytest

from app.records import MedicalRecord
from app.state import InspectionReport, PipelineState, ValidationResult, ValidationStatus, ValidationSummary
from ingestion.file_loader import build_parsed_file


def _parsed(filename):
    return build_parsed_file(filename, ["Code"], [{"Code": "E11"}])


class DummyFileLoader:
    def __init__(self, input_dir: str):
        self.input_dir = input_dir
    def load_files(self):
        # Return two files to exercise concurrency
        return {
            "codes1.csv": _parsed("codes1.csv"),
            "codes2.csv": _parsed("codes2.csv"),
        }


def _report(filename, status=ValidationStatus.VALID):
    record = MedicalRecord(medical_code="E11")
    result = ValidationResult(code="E11", status=status, original_data=record)
    return InspectionReport(
        filename=filename,
        file_type="medical",
        summary=ValidationSummary(total=1, valid=1 if status == ValidationStatus.VALID else 0),
        results=[result],
    )


class FakeGraph:
    def __init__(self, as_dict=False):
        self.as_dict = as_dict
    def invoke(self, state: PipelineState):
        state.report = _report(state.filename)
        # returns can be a PipelineState or a dict
        return state.model_dump() if self.as_dict else state


def _setup_monkeypatch(monkeypatch, graph):
    import cli
    monkeypatch.setattr(cli, "FileLoader", DummyFileLoader)
    monkeypatch.setattr(cli, "build_inspection_graph", lambda *a, **k: graph)
    return cli


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    # Avoid creating real Vertex client in tests
    monkeypatch.setenv("GCP_PROJECT", "")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "")
    monkeypatch.setenv("GOOGLE_API_KEY", "")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "")
    monkeypatch.delenv("WORKERS", raising=False)
    yield


@pytest.fixture
def out_dir(tmp_path, monkeypatch):
    out = tmp_path / "out"
    monkeypatch.setenv("INPUT_DIR", str(tmp_path))
    monkeypatch.setenv("OUTPUT_DIR", str(out))
    monkeypatch.setenv("WORKERS", "2")
    return out


def test_concurrent_writes(out_dir, monkeypatch):
    cli = _setup_monkeypatch(monkeypatch, FakeGraph())

    cli.main()

    assert {p.name for p in out_dir.iterdir()} == {"codes1.csv.json", "codes1.csv.csv", "codes2.csv.json", "codes2.csv.csv"}

    data = json.loads((out_dir / "codes1.csv.json").read_text())
    assert data["filename"] == "codes1.csv"
    assert data["summary"]["total"] == 1
    assert data["results"][0]["originalData"]["medical_code"] == "E11"
    assert data["results"][0]["duplicateOf"] is None

    csv_text = (out_dir / "codes2.csv.csv").read_text()
    assert csv_text.splitlines()[0] == "Code,Status,Coding System,Issues,Recommendations"
    assert csv_text.splitlines()[1].startswith("E11,valid,N/A")


def test_graph_returns_dict_path(out_dir, monkeypatch):
    # Return dicts to exercise PipelineState(**result) path
    cli = _setup_monkeypatch(monkeypatch, FakeGraph(as_dict=True))

    cli.main()

    data = json.loads((out_dir / "codes2.csv.json").read_text())
    assert data["results"][0]["code"] == "E11"


def test_error_in_one_file_does_not_abort_others(out_dir, monkeypatch, capsys):
    class RaisingGraph:
        def invoke(self, state):
            if state.filename == "codes1.csv":
                raise RuntimeError("boom")
            state.report = _report(state.filename)
            return state

    cli = _setup_monkeypatch(monkeypatch, RaisingGraph())

    cli.main()
    captured = capsys.readouterr()
    assert "Error: boom" in captured.out

    files = {p.name for p in out_dir.iterdir()}
    assert files == {"codes2.csv.json", "codes2.csv.csv"}


def test_slack_notification_failure_is_logged_not_raised(out_dir, monkeypatch):
    sent = []

    class FailingNotifier:
        def __init__(self, webhook_url, token=""):
            pass
        def send(self, results, channel):
            from services.notifier import NotificationError
            sent.append(channel)
            raise NotificationError("webhook down")

    cli = _setup_monkeypatch(monkeypatch, FakeGraph())
    monkeypatch.setattr(cli, "SlackNotifier", FailingNotifier)
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.example.com/abc")
    monkeypatch.setenv("SLACK_CHANNEL", "#qa")

    cli.main()

    assert sent == ["#qa", "#qa"]
    assert (out_dir / "codes1.csv.json").exists()
