import json
from typing import Any

from app.records import FileType


SYSTEM_INSTRUCTIONS: dict[FileType, str] = {
    FileType.MEDICAL: (
        "You are a medical coding expert assistant. Analyze medical codes and "
        "provide validation results with helpful explanations."
    ),
    FileType.DRUG: (
        "You are a pharmaceutical coding and pricing expert. Analyze drug codes, "
        "validate specifications, and check for pricing compliance."
    ),
    FileType.POLICY: (
        "You are an insurance policy expert. Analyze policy data for validity, "
        "coverage limits, and compliance with standards."
    ),
    FileType.CLINICIAN: (
        "You are a healthcare credentialing expert. Analyze clinician records for "
        "complete, well-formed identifiers and credentials."
    ),
    FileType.PROVIDER: (
        "You are a healthcare provider network expert. Analyze provider records for "
        "valid identifiers, licensing, and classification."
    ),
    FileType.INTERMEDIARY: (
        "You are a healthcare provider network expert. Analyze insurance intermediary "
        "records for valid identifiers, licensing, and contact details."
    ),
}


CHECKLISTS: dict[FileType, str] = {
    FileType.MEDICAL: """
1. Is the coding system standard and correctly formatted?
2. Are required fields missing?
3. Are there any potential billing or compliance issues?
4. What recommendations would improve this entry?
""",
    FileType.DRUG: """
1. Is the drug code format valid?
2. Are strength and unit specifications correct?
3. Is pricing reasonable compared to UCR benchmark?
4. Check for valid ATC code format
5. Verify date formats and ranges
6. Look for duplicate entries
""",
    FileType.POLICY: """
1. Verify policy ID format and uniqueness
2. Check date ranges for validity
3. Validate coverage limits and currency
4. Verify policy type matches standards
5. Check status values are valid
6. Look for duplicate payer/policy combinations
""",
    FileType.CLINICIAN: """
1. Is the NPI a 10-digit number and the license number present?
2. Is the DEA number well formed when present?
3. Are specialty and board certification consistent?
4. Is years of experience plausible?
""",
    FileType.PROVIDER: """
1. Is the provider ID present and well formed?
2. Is the NPI a 10-digit number when present?
3. Are license, specialty and facility details consistent?
4. Is the address complete?
""",
    FileType.INTERMEDIARY: """
1. Is the intermediary ID present and well formed?
2. Is the license number present?
3. Are contact details (person, email, phone) complete and well formed?
""",
}

RECORD_LABELS: dict[FileType, str] = {
    FileType.MEDICAL: "medical code",
    FileType.DRUG: "drug",
    FileType.POLICY: "policy",
    FileType.CLINICIAN: "clinician",
    FileType.PROVIDER: "provider",
    FileType.INTERMEDIARY: "intermediary",
}


BATCH_PROMPT = """
Analyze each {label} entry below and provide validation results.
Each entry has a batch-local "index" and its "data".

Entries:
{entries}

Consider:
{checklist}
Provide a helpful explanation in natural language for every entry.

Return only a JSON object of this shape, with exactly one item per entry:
{{
  "results": [
    {{
      "index": <entry index>,
      "status": "valid" | "warning" | "invalid",
      "issues": string[],
      "recommendations": string[],
      "explanation": string,
      "compliance_notes": string[],
      "duplicateOf": string | null
    }}
  ]
}}
""".strip()


def system_instruction(file_type: FileType) -> str:
    return SYSTEM_INSTRUCTIONS[FileType(file_type)]


def build_batch_prompt(file_type: FileType, entries: list[dict[str, Any]]) -> str:
    """Render the user message for one batch.

    Args:
        file_type: Record type shared by every entry.
        entries: Record field mappings in batch order; index i is assigned to entries[i].
    """
    file_type = FileType(file_type)
    payload = [{"index": i, "data": data} for i, data in enumerate(entries)]
    return BATCH_PROMPT.format(
        label=RECORD_LABELS[file_type],
        entries=json.dumps(payload, indent=2, default=str),
        checklist=CHECKLISTS[file_type].strip(),
    )


ANALYSIS_SYSTEM_PROMPT = (
    "You are a healthcare data analysis expert. Analyze file contents and "
    "suggest appropriate validation workflows."
)

ANALYSIS_PROMPT = """
Analyze this healthcare data file and provide insights:

File: {file_name}
Type: {file_format}
Headers: {headers}
Sample data: {sample}

Provide:
1. A brief summary of the file contents (2-3 sentences)
2. Suggested validation workflows from: Claims, Policy & Member, Billing, Provider Details, User Uploads, Medical Codes

Return JSON format:
{{
  "summary": "Brief description of file contents",
  "workflows": ["workflow1", "workflow2"]
}}
""".strip()


def build_analysis_prompt(file_name: str, file_format: str, headers: list[str], sample: list[dict[str, Any]]) -> str:
    return ANALYSIS_PROMPT.format(
        file_name=file_name,
        file_format=file_format,
        headers=", ".join(headers),
        sample=json.dumps(sample[:3], indent=2, default=str),
    )
