import re
from types import MappingProxyType
from typing import Iterable, List, Mapping, Pattern, Tuple

from app.records import FileType

# Separator between words of a header: "Drug Code", "drug_code", "drug-code", "DrugCode".
_SEP = r"[\s_\-./]*"


def _patterns(*regexes: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(rx, re.IGNORECASE) for rx in regexes)


# Ordered (canonical field, patterns) per file type. Patterns are tested against the
# trimmed, lowercased header and the first canonical field with a match wins.
HEADER_PATTERNS: Mapping[FileType, Tuple[Tuple[str, Tuple[Pattern[str], ...]], ...]] = MappingProxyType({
    FileType.MEDICAL: (
        ("medical_code", _patterns(
            rf"^(medical{_SEP})?code$",
            rf"^(icd{_SEP}(10{_SEP})?|cpt{_SEP}|hcpcs{_SEP}|drg{_SEP}|diagnosis{_SEP}|procedure{_SEP}|service{_SEP})code$",
            rf"^medical{_SEP}code{_SEP}(id|number|no)$",
        )),
        ("description", _patterns(rf"^(code{_SEP})?desc(ription)?$", rf"^(long|short){_SEP}desc(ription)?$")),
        ("coding_system", _patterns(rf"^(coding{_SEP})?system$", rf"^code{_SEP}(type|system)$")),
        ("tag", _patterns(r"^tags?$", r"^category$")),
        ("coverage", _patterns(r"^coverage$", r"^covered$")),
    ),
    FileType.DRUG: (
        ("drug_code", _patterns(rf"^(drug|medication|product){_SEP}code$", r"^ndc$", rf"^ndc{_SEP}code$")),
        ("drug_name", _patterns(rf"^(drug|medication|product){_SEP}name$", r"^(generic|brand)[\s_\-]*name$")),
        ("drug_type", _patterns(rf"^(drug|medication){_SEP}type$", r"^dosage[\s_\-]*form$")),
        ("coding_system", _patterns(rf"^(coding{_SEP})?system$")),
        ("strength", _patterns(r"^strength$", r"^dose$")),
        ("unit", _patterns(r"^units?$")),
        ("package_size", _patterns(rf"^pack(age)?{_SEP}size$")),
        ("uom", _patterns(r"^uom$", rf"^unit{_SEP}of{_SEP}measure$")),
        ("price", _patterns(r"^price$", rf"^unit{_SEP}price$", r"^cost$")),
        ("currency", _patterns(r"^currency$", r"^ccy$")),
        ("branded_generic", _patterns(rf"^brand(ed)?{_SEP}(/{_SEP})?generic$")),
        ("chronic_indicator", _patterns(rf"^chronic({_SEP}(indicator|flag))?$")),
        ("atc_code", _patterns(rf"^atc({_SEP}code)?$")),
        ("ucr_benchmark", _patterns(rf"^ucr({_SEP}benchmark)?$")),
        ("valid_from", _patterns(rf"^valid{_SEP}from$", rf"^effective{_SEP}(from|date)$")),
        ("valid_to", _patterns(rf"^valid{_SEP}(to|until)$", rf"^expir(y|ation){_SEP}date$")),
        ("remarks", _patterns(r"^remarks?$", r"^notes?$")),
    ),
    FileType.POLICY: (
        ("policy_id", _patterns(rf"^policy{_SEP}(id|number|no)$")),
        ("policy_name", _patterns(rf"^policy{_SEP}name$", rf"^plan{_SEP}name$")),
        ("payer_id", _patterns(rf"^payer{_SEP}(id|code)$", rf"^insurer{_SEP}id$")),
        ("policy_type", _patterns(rf"^(policy|plan){_SEP}type$")),
        ("start_date", _patterns(rf"^(start|effective){_SEP}date$")),
        ("end_date", _patterns(rf"^(end|expiry|expiration){_SEP}date$")),
        ("currency", _patterns(r"^currency$")),
        ("coverage_limit", _patterns(rf"^coverage{_SEP}(limit|amount)$", rf"^sum{_SEP}insured$")),
        ("status", _patterns(rf"^(policy{_SEP})?status$")),
        ("description", _patterns(r"^desc(ription)?$")),
    ),
    FileType.CLINICIAN: (
        ("clinician_id", _patterns(rf"^(clinician|doctor|physician|practitioner){_SEP}id$")),
        ("first_name", _patterns(rf"^first{_SEP}name$", rf"^given{_SEP}name$")),
        ("last_name", _patterns(rf"^last{_SEP}name$", r"^surname$", rf"^family{_SEP}name$")),
        ("title", _patterns(r"^title$")),
        ("specialty", _patterns(r"^special(i)?ty$", rf"^primary{_SEP}special(i)?ty$")),
        ("subspecialty", _patterns(rf"^sub{_SEP}special(i)?ty$")),
        ("license_number", _patterns(rf"^licen[cs]e({_SEP}(number|no|id))?$")),
        ("npi", _patterns(r"^npi$", rf"^npi{_SEP}(number|no)$")),
        ("dea_number", _patterns(rf"^dea({_SEP}(number|no))?$")),
        ("board_certification", _patterns(rf"^board{_SEP}cert(ification|ified)?$")),
        ("years_experience", _patterns(rf"^(years{_SEP}(of{_SEP})?)?experience$", r"^yoe$")),
        ("employment_status", _patterns(rf"^employment{_SEP}status$")),
        ("department", _patterns(r"^department$", r"^dept$")),
    ),
    FileType.PROVIDER: (
        ("provider_id", _patterns(rf"^(provider|facility){_SEP}(id|code)$")),
        ("provider_name", _patterns(rf"^(provider|facility){_SEP}name$")),
        ("provider_type", _patterns(rf"^(provider|facility){_SEP}type$")),
        ("npi", _patterns(r"^npi$", rf"^npi{_SEP}(number|no)$")),
        ("license_number", _patterns(rf"^licen[cs]e({_SEP}(number|no|id))?$")),
        ("specialty", _patterns(r"^special(i)?ty$")),
        ("facility", _patterns(r"^facility$")),
        ("address", _patterns(r"^address$", rf"^street{_SEP}address$")),
        ("phone", _patterns(r"^phone$", rf"^(phone|contact){_SEP}(number|no)$")),
    ),
    FileType.INTERMEDIARY: (
        ("intermediary_id", _patterns(rf"^(intermediary|broker|agent|tpa){_SEP}(id|code)$")),
        ("intermediary_name", _patterns(rf"^(intermediary|broker|agent|tpa){_SEP}name$")),
        ("intermediary_type", _patterns(rf"^(intermediary|broker|agent){_SEP}type$")),
        ("license_number", _patterns(rf"^licen[cs]e({_SEP}(number|no|id))?$")),
        ("contact_person", _patterns(rf"^contact{_SEP}(person|name)$")),
        ("email", _patterns(rf"^e{_SEP}mail$", rf"^email{_SEP}address$")),
        ("phone", _patterns(r"^phone$", rf"^(phone|contact){_SEP}(number|no)$")),
        ("address", _patterns(r"^address$")),
    ),
})


def _clean(header: str) -> str:
    return str(header).strip().lower()


def matches_field(header: str, file_type: FileType, field: str) -> bool:
    """True if `header` matches any pattern configured for `field` of `file_type`."""
    cleaned = _clean(header)
    for canonical, patterns in HEADER_PATTERNS[FileType(file_type)]:
        if canonical == field:
            return any(p.search(cleaned) for p in patterns)
    return False


def normalize_header(header: str, file_type: FileType) -> str:
    """Map a raw column name to its canonical field name for `file_type`.

    Unmatched headers are returned lowercased and trimmed so that unknown
    columns are preserved.
    """
    cleaned = _clean(header)
    for canonical, patterns in HEADER_PATTERNS[FileType(file_type)]:
        if any(p.search(cleaned) for p in patterns):
            return canonical
    return cleaned


def normalize_headers(headers: Iterable[str], file_type: FileType) -> List[str]:
    return [normalize_header(h, file_type) for h in headers]
