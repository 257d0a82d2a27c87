import pytest

from app.records import FileType
from ingestion.header_normalizer import matches_field, normalize_header, normalize_headers


@pytest.mark.parametrize("header, expected", [
    ("Drug Code", "drug_code"),
    ("  NDC ", "drug_code"),
    ("drug-name", "drug_name"),
    ("Brand/Generic", "branded_generic"),
    ("Unit Price", "price"),
    ("ATC", "atc_code"),
    ("UCR Benchmark", "ucr_benchmark"),
])
def test_drug_headers(header, expected):
    assert normalize_header(header, FileType.DRUG) == expected


@pytest.mark.parametrize("header, expected", [
    ("Code", "medical_code"),
    ("ICD-10 Code", "medical_code"),
    ("CPT_Code", "medical_code"),
    ("Description", "description"),
    ("Coding System", "coding_system"),
])
def test_medical_headers(header, expected):
    assert normalize_header(header, FileType.MEDICAL) == expected


def test_policy_headers_without_separators():
    assert normalize_header("PolicyNumber", FileType.POLICY) == "policy_id"
    assert normalize_header("Plan Name", FileType.POLICY) == "policy_name"
    assert normalize_header("Sum Insured", FileType.POLICY) == "coverage_limit"


def test_unmatched_header_is_lowercased_and_trimmed():
    assert normalize_header("  Manufacturer ", FileType.DRUG) == "manufacturer"


def test_patterns_are_per_file_type():
    # "Last Name" only means something for clinicians
    assert normalize_header("Last Name", FileType.CLINICIAN) == "last_name"
    assert normalize_header("Last Name", FileType.DRUG) == "last name"


def test_normalize_headers_keeps_order():
    headers = ["Provider Name", "NPI", "Provider ID"]
    assert normalize_headers(headers, FileType.PROVIDER) == ["provider_name", "npi", "provider_id"]


def test_matches_field():
    assert matches_field("Broker ID", FileType.INTERMEDIARY, "intermediary_id")
    assert not matches_field("Broker ID", FileType.INTERMEDIARY, "intermediary_name")
    assert not matches_field("Broker ID", FileType.INTERMEDIARY, "no_such_field")


def test_accepts_plain_string_file_type():
    assert normalize_header("Surname", "clinician") == "last_name"
