from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Literal, Union
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints


class FileType(str, Enum):
    MEDICAL = "medical"
    DRUG = "drug"
    POLICY = "policy"
    CLINICIAN = "clinician"
    PROVIDER = "provider"
    INTERMEDIARY = "intermediary"


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


# A missing or blank key fails validation, so keyless rows can never become records.
PrimaryKey = Annotated[
    str,
    BeforeValidator(_none_to_empty),
    StringConstraints(strip_whitespace=True, min_length=1),
]


class RecordBase(BaseModel):
    """One parsed row of an uploaded file.
    Known canonical fields are declared per variant; any other column is kept
    as an extra field so nothing from the source file is lost.
    """
    model_config = ConfigDict(extra="allow", frozen=True, coerce_numbers_to_str=True)

    primary_key_field: ClassVar[str] = ""

    @property
    def primary_key(self) -> str:
        return getattr(self, self.primary_key_field)

    def fields(self) -> Dict[str, Any]:
        """Canonical field values without the discriminator."""
        return self.model_dump(mode="json", exclude={"file_type"})


class MedicalRecord(RecordBase):
    primary_key_field: ClassVar[str] = "medical_code"

    file_type: Literal["medical"] = "medical"
    medical_code: PrimaryKey
    description: str | None = None
    coding_system: str | None = None
    tag: str | None = None
    coverage: str | None = None


class DrugRecord(RecordBase):
    primary_key_field: ClassVar[str] = "drug_code"

    file_type: Literal["drug"] = "drug"
    drug_code: PrimaryKey
    drug_name: str | None = None
    coding_system: str | None = None
    drug_type: str | None = None
    strength: str | None = None
    unit: str | None = None
    package_size: str | None = None
    uom: str | None = None
    price: float | str | None = None
    currency: str | None = None
    branded_generic: str | None = None
    chronic_indicator: str | None = None
    atc_code: str | None = None
    ucr_benchmark: float | str | None = None
    valid_from: str | None = None
    valid_to: str | None = None
    remarks: str | None = None


class PolicyRecord(RecordBase):
    primary_key_field: ClassVar[str] = "policy_id"

    file_type: Literal["policy"] = "policy"
    policy_id: PrimaryKey
    policy_name: str | None = None
    payer_id: str | None = None
    policy_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    currency: str | None = None
    coverage_limit: float | str | None = None
    status: str | None = None
    description: str | None = None


class ClinicianRecord(RecordBase):
    primary_key_field: ClassVar[str] = "clinician_id"

    file_type: Literal["clinician"] = "clinician"
    clinician_id: PrimaryKey
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    specialty: str | None = None
    subspecialty: str | None = None
    license_number: str | None = None
    npi: str | None = None
    dea_number: str | None = None
    board_certification: str | None = None
    years_experience: float | str | None = None
    employment_status: str | None = None
    department: str | None = None


class ProviderRecord(RecordBase):
    primary_key_field: ClassVar[str] = "provider_id"

    file_type: Literal["provider"] = "provider"
    provider_id: PrimaryKey
    provider_name: str | None = None
    provider_type: str | None = None
    npi: str | None = None
    license_number: str | None = None
    specialty: str | None = None
    facility: str | None = None
    address: str | None = None
    phone: str | None = None


class IntermediaryRecord(RecordBase):
    primary_key_field: ClassVar[str] = "intermediary_id"

    file_type: Literal["intermediary"] = "intermediary"
    intermediary_id: PrimaryKey
    intermediary_name: str | None = None
    intermediary_type: str | None = None
    license_number: str | None = None
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


Record = Annotated[
    Union[MedicalRecord, DrugRecord, PolicyRecord, ClinicianRecord, ProviderRecord, IntermediaryRecord],
    Field(discriminator="file_type"),
]

RECORD_MODELS: Dict[FileType, type[RecordBase]] = {
    FileType.MEDICAL: MedicalRecord,
    FileType.DRUG: DrugRecord,
    FileType.POLICY: PolicyRecord,
    FileType.CLINICIAN: ClinicianRecord,
    FileType.PROVIDER: ProviderRecord,
    FileType.INTERMEDIARY: IntermediaryRecord,
}

# Fields parsed as numbers at ingestion; everything else is kept as text.
NUMERIC_FIELDS = frozenset({"price", "ucr_benchmark", "coverage_limit", "years_experience"})


def primary_key_field(file_type: FileType) -> str:
    return RECORD_MODELS[FileType(file_type)].primary_key_field


def build_record(file_type: FileType, values: Dict[str, Any]) -> RecordBase:
    """Construct the record variant for `file_type`.
    Raises pydantic.ValidationError when the primary key is missing or blank.
    """
    data = {k: v for k, v in values.items() if k != "file_type"}
    return RECORD_MODELS[FileType(file_type)].model_validate(data)
