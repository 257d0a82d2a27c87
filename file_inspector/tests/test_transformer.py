import pytest

from app.records import ClinicianRecord, DrugRecord, MedicalRecord, PolicyRecord
from services.transformer import transform_drug_code, transform_medical_code, transform_policy, transform_record, transform_records


@pytest.mark.parametrize("code, system", [
    ("E11.9", "ICD-10"),
    ("I10", "ICD-10"),
    ("99213", "CPT"),
    ("470", "DRG"),
])
def test_medical_coding_system_inferred(code, system):
    out = transform_medical_code(MedicalRecord(medical_code=code))
    assert out.coding_system == system
    assert out.tag


def test_unknown_medical_code_is_left_alone():
    record = MedicalRecord(medical_code="XYZ-1")
    assert transform_medical_code(record) == record


def test_existing_coding_system_is_kept():
    out = transform_medical_code(MedicalRecord(medical_code="99213", coding_system="HCPCS"))
    assert out.coding_system == "HCPCS"
    assert out.tag is None


def test_existing_tag_is_kept():
    out = transform_medical_code(MedicalRecord(medical_code="E11", tag="Diabetes"))
    assert out.coding_system == "ICD-10"
    assert out.tag == "Diabetes"


def test_first_coverage_keyword_wins():
    out = transform_medical_code(MedicalRecord(medical_code="99285", description="Emergency visit for chronic illness"))
    assert out.coverage == "Emergency"

    out = transform_medical_code(MedicalRecord(medical_code="G0121", description="Colorectal SCREENING"))
    assert out.coverage == "Preventive"


def test_medical_transform_is_idempotent():
    record = MedicalRecord(medical_code="E11.9", description="Ongoing care for type 2 diabetes")
    once = transform_medical_code(record)
    twice = transform_medical_code(once)
    assert once == twice
    assert once.coverage == "Chronic Care"


def test_input_record_is_not_modified():
    record = MedicalRecord(medical_code="E11.9")
    transform_record(record)
    assert record.coding_system is None


def test_drug_coding_system():
    assert transform_drug_code(DrugRecord(drug_code="A10BA02", drug_name="Metformin")).coding_system == "ATC"
    assert transform_drug_code(DrugRecord(drug_code="AB123456", drug_name="Aspirin")).coding_system == "NDC"
    # an explicit ATC code means the drug code is not classified
    out = transform_drug_code(DrugRecord(drug_code="A10BA02", drug_name="Metformin", atc_code="A10BA02"))
    assert out.coding_system is None


def test_chronic_indicator():
    assert transform_drug_code(DrugRecord(drug_code="X1", drug_name="Maintenance inhaler")).chronic_indicator == "Y"
    assert transform_drug_code(DrugRecord(drug_code="X1", drug_name="Salbutamol", drug_type="Chronic")).chronic_indicator == "Y"
    assert transform_drug_code(DrugRecord(drug_code="X1", drug_name="Amoxicillin")).chronic_indicator is None


def test_ucr_benchmark_from_price():
    out = transform_drug_code(DrugRecord(drug_code="X1", drug_name="A", price=10.0))
    assert out.ucr_benchmark == pytest.approx(12.0)

    out = transform_drug_code(DrugRecord(drug_code="X1", drug_name="A", price=10.0, ucr_benchmark=15.0))
    assert out.ucr_benchmark == 15.0

    out = transform_drug_code(DrugRecord(drug_code="X1", drug_name="A", price="n/a"))
    assert out.ucr_benchmark is None


@pytest.mark.parametrize("raw, expected", [
    ("Single", "Individual"),
    ("individual plan", "Individual"),
    ("Group", "Family"),
    ("Business", "Corporate"),
    ("Travel", "Travel"),
])
def test_policy_type_standardized(raw, expected):
    assert transform_policy(PolicyRecord(policy_id="P1", policy_type=raw)).policy_type == expected


@pytest.mark.parametrize("raw, expected", [
    ("current", "Active"),
    ("Pending approval", "Pending"),
    ("terminated", "Expired"),
    # substring match: "inactive" contains "active"
    ("Inactive", "Active"),
    ("Lapsed", "Lapsed"),
])
def test_policy_status_standardized(raw, expected):
    assert transform_policy(PolicyRecord(policy_id="P1", status=raw)).status == expected


def test_other_types_pass_through():
    record = ClinicianRecord(clinician_id="C1", last_name="Smith")
    out = transform_record(record)
    assert out == record
    assert out is not record


def test_transform_records_keeps_order():
    records = [MedicalRecord(medical_code=c) for c in ("E11", "99213", "470")]
    assert [r.coding_system for r in transform_records(records)] == ["ICD-10", "CPT", "DRG"]
