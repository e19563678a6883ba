"""
test_builder.py

Unit tests for the catalog driven tree builder.

Covers:
- Patient identifiers, health card sentinel policy and demographics.
- Encounter locations, references and period.
- QuestionnaireResponse sections, grouped questions and value kinds.
"""

import pytest

from ltcf_ingestor.commons.errors import FieldValueError, UnsupportedResourceError
from ltcf_ingestor.parsers.models import ParsedRecord, ResourceIds
from ltcf_ingestor.transformers.builder import build_resource, coerce_value
from ltcf_ingestor.transformers.catalog import (
    DATA_ABSENT_EXT,
    DEFAULT_CATALOG,
    ON_HCN_SYSTEM,
    BuildContext,
    MappingOptions,
)
from ltcf_ingestor.transformers.entry import ResourceType
from ltcf_ingestor.transformers.pruning import has_empty_branch, prune
from ltcf_ingestor.transformers.tree import ValueKind


def make_record(patient=None, encounter=None, assessment=None):
    return ParsedRecord.from_dicts(patient=patient, encounter=encounter, assessment=assessment)


def make_ctx(record, **options):
    return BuildContext(
        record=record,
        ids=ResourceIds(patient="p-1", encounter="e-1", questionnaire_response="q-1"),
        options=MappingOptions(**options),
    )


def build(record, rt, **options):
    return prune(build_resource(record, rt, make_ctx(record, **options)))


# ----------------- Patient -----------------
def test_patient_unknown_hcn_is_omitted():
    rec = make_record(patient={"A5A": "unknown", "A3": "1950-01-01", "OrgID": "ORG1"})
    p = build(rec, ResourceType.PATIENT)
    assert p.find("birthDate").value == "1950-01-01"
    assert p.find("managingOrganization/identifier/value").value == "ORG1"
    assert p.child("identifier") is None
    assert all(n.value != "unknown" for n in p.walk())


def test_patient_unknown_hcn_data_absent_policy():
    rec = make_record(patient={"A5A": "unknown"})
    p = build(rec, ResourceType.PATIENT, hcn_absent_policy="data-absent-reason")
    ident = p.find("identifier#hcn")
    ext = ident.find("extension#absent")
    assert ext.attributes["url"] == DATA_ABSENT_EXT
    assert ext.find("valueCode").value == "unknown"
    assert ident.find("type/coding/code").value == "JHN"
    assert ident.find("value") is None
    assert ident.find("system") is None


def test_sentinel_match_is_exact():
    rec = make_record(patient={"A5A": "Unknown"})
    p = build(rec, ResourceType.PATIENT)
    # solo "unknown" literal es centinela
    assert p.find("identifier#hcn/value").value == "Unknown"


def test_patient_hcn_systems_by_province():
    on = build(make_record(patient={"A5A": "111", "A5B": "ON"}), ResourceType.PATIENT)
    assert on.find("identifier#hcn/system").value == ON_HCN_SYSTEM
    qc = build(make_record(patient={"A5A": "222", "A5B": "QC"}), ResourceType.PATIENT)
    assert qc.find("identifier#hcn/system").value.endswith("/ca-qc-patient-healthcare-id")
    assert qc.find("identifier#hcn/type/coding/code").value == "JHN"


def test_patient_full_demographics_order():
    rec = make_record(
        patient={
            "A2A": "F",
            "A5A": "1234567890",
            "A5C": "CASE-9",
            "A3": "19400203",
            "A4": "2",
            "B4": "en",
            "B6": "K1A0B1",
            "OrgID": "ORG1",
        }
    )
    p = build(rec, ResourceType.PATIENT)
    keys = [c.key for c in p.children]
    assert keys == [
        "meta",
        "extension",
        "identifier",
        "identifier",
        "birthDate",
        "address",
        "maritalStatus",
        "communication",
        "managingOrganization",
    ]
    assert p.find("birthDate").value == "1940-02-03"
    assert p.find("identifier#case/type/coding/code").value == "MR"
    assert p.find("address/use").value == "home"
    assert p.find("extension#birthSex").attributes["url"].endswith("irrs-ext-birth-sex")


def test_constants_need_an_anchor():
    p = build(make_record(patient={"A3": "1950-01-01"}), ResourceType.PATIENT)
    # sin B6 no hay address/use; sin A5C no hay identificador de caso
    assert p.child("address") is None
    assert p.child("identifier") is None
    assert p.find("meta/profile") is not None


# ----------------- Encounter -----------------
def test_encounter_admission_only():
    rec = make_record(encounter={"B5A": "3", "B2": "2024-01-05", "OrgID": "ORG9"})
    e = build(rec, ResourceType.ENCOUNTER)
    assert e.find("status").value == "planned"
    assert e.find("subject/reference").value == "Patient/p-1"
    assert e.find("period/start").value == "2024-01-05"
    assert e.find("period/end") is None
    assert e.find("contained#admittedFrom/Location/id").value == "admittedFrom"
    assert e.find("contained#admittedFrom/Location/type/coding/code").value == "3"
    assert e.find("contained#dischargedTo") is None
    assert e.find("hospitalization/origin/reference").value == "#admittedFrom"
    assert e.find("hospitalization/destination") is None
    assert e.find("serviceProvider/identifier/value").value == "ORG9"


def test_encounter_full_url_reference_style():
    rec = make_record(encounter={"B2": "2024-01-05"})
    e = build(rec, ResourceType.ENCOUNTER, reference_style="full-url")
    assert e.find("subject/reference").value == "urn:uuid:p-1"


# ----------------- QuestionnaireResponse -----------------
def test_questionnaire_header():
    q = build(make_record(assessment={"SECTION B": {"B1": "0"}}), ResourceType.QUESTIONNAIRE_RESPONSE)
    assert q.find("questionnaire/reference").value == "Questionnaire/irrs-ltcf"
    assert q.find("status").value == "completed"
    assert q.find("subject/reference").value == "Patient/p-1"
    assert q.find("context/reference").value == "Encounter/e-1"
    assert q.find("item#B/item#B1/answer/valueCoding/code").value == "0"


def test_missing_section_leaves_no_node():
    rec = make_record(assessment={"SECTION B": {"B1": "0"}})
    raw = build_resource(rec, ResourceType.QUESTIONNAIRE_RESPONSE, make_ctx(rec))
    # antes de podar la sección existe vacía
    assert raw.find("item#A") is not None
    q = prune(raw)
    assert q.find("item#A") is None
    assert [c.label() for c in q.children if c.key == "item"] == ["B"]


def test_care_goal_requires_primary():
    only_expressed = build(make_record(assessment={"SECTION A": {"A10a": "walk"}}), "QuestionnaireResponse")
    assert only_expressed.find("item#A") is None

    both = build(
        make_record(assessment={"SECTION A": {"A10": "go home", "A10a": "walk"}}), "QuestionnaireResponse"
    )
    goal = both.find("item#A/item#A10g")
    assert goal.find("item#A10/answer/valueString").value == "go home"
    assert goal.find("item#A10a/answer/valueString").value == "walk"

    primary = build(make_record(assessment={"SECTION A": {"A10": "go home"}}), "QuestionnaireResponse")
    assert primary.find("item#A/item#A10g/item#A10a") is None


def test_indigenous_identity_shares_container():
    q = build(make_record(assessment={"SECTION B": {"B3b": "1", "B3c": "1"}}), "QuestionnaireResponse")
    b3 = q.find("item#B/item#B3")
    assert [c.label() for c in b3.children if c.key == "item"] == ["B3b", "B3c"]
    assert q.find("item#B/item#B3/item#B3a") is None

    none = build(make_record(assessment={"SECTION B": {"B1": "1"}}), "QuestionnaireResponse")
    assert none.find("item#B/item#B3") is None


def test_numeric_kinds():
    q = build(make_record(assessment={"SECTION K": {"K1a": "170", "K1b": "72.5"}}), "QuestionnaireResponse")
    height = q.find("item#K/item#K1/item#K1a/answer/valueInteger")
    weight = q.find("item#K/item#K1/item#K1b/answer/valueDecimal")
    assert height.value == "170" and height.kind == ValueKind.INTEGER
    assert weight.value == "72.5" and weight.kind == ValueKind.DECIMAL

    blank = build(make_record(assessment={"SECTION K": {"K1a": "  ", "K3": "1"}}), "QuestionnaireResponse")
    assert blank.find("item#K/item#K1") is None
    assert blank.find("item#K/item#K3/answer/valueCoding/code").value == "1"


def test_therapy_minutes_are_integers():
    q = build(make_record(assessment={"SECTION O": {"O3ab": "45", "O5": "2"}}), "QuestionnaireResponse")
    assert q.find("item#O/item#O3/item#O3ab/answer/valueInteger").value == "45"
    assert q.find("item#O/item#O5/answer/valueInteger").value == "2"


def test_dates_in_sections():
    q = build(make_record(assessment={"SECTION S": {"S2": "20240301"}}), "QuestionnaireResponse")
    assert q.find("item#S/item#S2/answer/valueDate").value == "2024-03-01"


def test_discharge_status_is_coded():
    # R1 en la sección R es un código, no una fecha (la fecha de alta va en el Encounter)
    q = build(make_record(assessment={"SECTION R": {"R1": "3"}}), "QuestionnaireResponse")
    answer = q.find("item#R/item#R1/answer")
    assert answer.find("valueCoding/code").value == "3"
    assert answer.find("valueDate") is None


def test_invalid_values_raise():
    rec = make_record(assessment={"SECTION K": {"K1a": "tall"}})
    with pytest.raises(FieldValueError) as ex:
        build_resource(rec, ResourceType.QUESTIONNAIRE_RESPONSE)
    assert ex.value.key == "K1a"
    with pytest.raises(ValueError):
        build_resource(make_record(patient={"A3": "1950-13-01"}), ResourceType.PATIENT)


def test_coerce_value():
    assert coerce_value(ValueKind.INTEGER, "N3", "+007") == "7"
    assert coerce_value(ValueKind.DATE, "A9", "2024-02") == "2024-02"
    assert coerce_value(ValueKind.CODE, "B1", " 2 ") == "2"
    with pytest.raises(FieldValueError):
        coerce_value(ValueKind.DECIMAL, "K1b", "NaN")


def test_absent_fields_produce_no_leaves():
    rec = make_record(assessment={"SECTION C": {"C1": "1"}})
    q = build(rec, "QuestionnaireResponse")
    link_ids = {n.value for n in q.find_all("linkId")}
    assert link_ids == {"C", "C1"}
    assert not has_empty_branch(q)


def test_all_catalog_keys_roundtrip_without_empty_branches():
    # todas las preguntas con un valor válido para su tipo
    sample = {ValueKind.INTEGER: "1", ValueKind.DECIMAL: "1.5", ValueKind.DATE: "2024-01-01"}
    assessment = {}
    for f in DEFAULT_CATALOG.get(ResourceType.QUESTIONNAIRE_RESPONSE).fields:
        if f.key:
            assessment.setdefault(f.section, {})[f.key] = sample.get(f.kind, "1")
    q = build(make_record(assessment=assessment), "QuestionnaireResponse")
    assert len([c for c in q.children if c.key == "item"]) == 19
    assert not has_empty_branch(q)


def test_bad_inputs():
    with pytest.raises(ValueError):
        build_resource(None, ResourceType.PATIENT)
    with pytest.raises(UnsupportedResourceError):
        build_resource(make_record(), "Observation")
