import io
import json
import pandas as pd

from app.records import MedicalRecord
from app.state import ValidationResult, ValidationStatus
from services.export import CSV_COLUMNS, results_to_csv, results_to_json


def _results():
    return [
        ValidationResult(
            code="E11",
            status=ValidationStatus.VALID,
            coding_system="ICD-10",
            issues=[],
            recommendations=["Add a 4th character for specificity"],
            original_data=MedicalRecord(medical_code="E11", coding_system="ICD-10"),
        ),
        ValidationResult(
            code="E11",
            status=ValidationStatus.WARNING,
            issues=["Duplicate entry", "Missing description"],
            duplicate_of="E11",
            original_data=MedicalRecord(medical_code="E11"),
        ),
    ]


def test_json_export_uses_aliases():
    data = json.loads(results_to_json(_results()))

    assert len(data) == 2
    assert data[1]["duplicateOf"] == "E11"
    assert data[0]["originalData"]["file_type"] == "medical"
    assert "duplicate_of" not in data[1]


def test_csv_export():
    df = pd.read_csv(io.StringIO(results_to_csv(_results())), keep_default_na=False)

    assert list(df.columns) == CSV_COLUMNS
    assert df["Coding System"].tolist() == ["ICD-10", "N/A"]
    assert df["Issues"].tolist() == ["", "Duplicate entry; Missing description"]
    assert df["Recommendations"].tolist()[0] == "Add a 4th character for specificity"


def test_csv_export_empty():
    assert results_to_csv([]).strip() == ",".join(CSV_COLUMNS)
