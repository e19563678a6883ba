# flake8: noqa

from ltcf_ingestor.parsers.flat_file import parse_flat_file, parse_flat_file_path
from ltcf_ingestor.parsers.models import AdminMetadata, Operation, ParsedRecord

import pytest

SAMPLE = """[ADMIN]
fhirPatID=
fhirPatKey=PK-1
patOper=create
rec_id=R-77
fiscal=2024
quarter=Q1

[PATIENT]
A5A = 1234567890
A3=1940-02-03
NOTE=a=b

[ENCOUNTER]
B2=2024-01-05

[SECTION A]
A8=1
this line has no equals sign

[  section   b ]
B1=2
"""


def test_sections_and_values():
    rec = parse_flat_file(SAMPLE)
    assert rec.patient.get("A5A") == "1234567890"
    assert rec.patient.get("a3") == "1940-02-03"
    # solo se parte en el primer '='
    assert rec.patient.get("NOTE") == "a=b"
    assert rec.encounter.get("B2") == "2024-01-05"
    assert rec.lookup("SECTION A", "A8") == "1"
    assert rec.lookup("section b", "B1") == "2"
    assert rec.lookup("B", "B1") == "2"


def test_unknown_and_blank_lookups_are_absent():
    rec = parse_flat_file(SAMPLE)
    assert rec.lookup("SECTION Z", "Z1") is None
    assert rec.lookup("PATIENT", "NOPE") is None
    assert rec.admin.get("fhirPatID") is None
    assert "fhirPatID" not in rec.admin


def test_admin_metadata_from_record():
    admin = AdminMetadata.from_record(parse_flat_file(SAMPLE))
    assert admin.fhir_pat_key == "PK-1"
    assert admin.fhir_pat_id is None
    assert admin.rec_id == "R-77"
    assert admin.patient_operation == Operation.CREATE
    # sin código => CREATE
    assert admin.encounter_operation == Operation.CREATE
    assert admin.fiscal == "2024" and admin.quarter == "Q1"


def test_operation_parse():
    assert Operation.parse(" Update ") == Operation.UPDATE
    assert Operation.parse(None) == Operation.CREATE
    assert Operation.parse("") == Operation.CREATE
    with pytest.raises(ValueError):
        Operation.parse("MERGE")


def test_null_inputs_fail_fast():
    with pytest.raises(ValueError):
        parse_flat_file(None)
    with pytest.raises(ValueError):
        AdminMetadata.from_record(None)


def test_repeated_section_merges_and_assessment_detection():
    rec = parse_flat_file("[SECTION C]\nC1=1\n[PATIENT]\nA3=1950\n[SECTION C]\nC4=0\n")
    assert rec.lookup("SECTION C", "C1") == "1"
    assert rec.lookup("SECTION C", "C4") == "0"
    assert rec.has_assessment()
    assert not ParsedRecord.from_dicts(assessment={"SECTION A": {"A8": " "}}).has_assessment()


def test_parse_from_path_with_bom(tmp_path):
    p = tmp_path / "20240105-101500_ltcf.dat"
    p.write_text("\ufeff[PATIENT]\nA3=1950-01-01\n", encoding="utf-8")
    assert parse_flat_file_path(p).patient.get("A3") == "1950-01-01"
