import json
from typing import List
import pandas as pd

from app.state import ValidationResult

CSV_COLUMNS = ["Code", "Status", "Coding System", "Issues", "Recommendations"]


def results_to_json(results: List[ValidationResult]) -> str:
    return json.dumps([r.model_dump(mode="json", by_alias=True) for r in results], indent=2)


def results_to_csv(results: List[ValidationResult]) -> str:
    rows = [
        {
            "Code": r.code,
            "Status": r.status.value,
            "Coding System": r.coding_system or "N/A",
            "Issues": "; ".join(r.issues),
            "Recommendations": "; ".join(r.recommendations),
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(index=False)
