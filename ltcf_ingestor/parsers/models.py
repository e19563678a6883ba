from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional

from ltcf_ingestor.parsers.base import is_blank, normalize_key, normalize_section


class FieldMap:
    """Vista de solo lectura, sin distinguir mayúsculas, sobre pares ``clave=valor``.

    Un valor en blanco cuenta como ausente: ``get`` devuelve ``None`` en ambos casos.
    """

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = {}
        self._names: Dict[str, str] = {}
        for k, v in (values or {}).items():
            self._set(k, v)

    def _set(self, key: str, value: str):
        norm = normalize_key(key)
        self._values[norm] = value
        self._names.setdefault(norm, key.strip())

    def get(self, key: str) -> Optional[str]:
        if key is None:
            return None
        value = self._values.get(normalize_key(key))
        if is_blank(value):
            return None
        return value.strip()

    def has_data(self) -> bool:
        return any(not is_blank(v) for v in self._values.values())

    def items(self) -> Iterator[tuple[str, str]]:
        for norm, value in self._values.items():
            yield self._names[norm], value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"FieldMap({dict(self.items())!r})"


@dataclass
class ParsedRecord:
    admin: FieldMap = field(default_factory=FieldMap)
    patient: FieldMap = field(default_factory=FieldMap)
    encounter: FieldMap = field(default_factory=FieldMap)
    assessment: Dict[str, FieldMap] = field(default_factory=dict)

    @classmethod
    def from_dicts(
        cls,
        admin: Optional[Dict[str, str]] = None,
        patient: Optional[Dict[str, str]] = None,
        encounter: Optional[Dict[str, str]] = None,
        assessment: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> "ParsedRecord":
        return cls(
            admin=FieldMap(admin),
            patient=FieldMap(patient),
            encounter=FieldMap(encounter),
            assessment={
                normalize_section(name): FieldMap(values)
                for name, values in (assessment or {}).items()
            },
        )

    def section(self, name: str) -> Optional[FieldMap]:
        name = normalize_section(name)
        if name == "ADMIN":
            return self.admin
        if name == "PATIENT":
            return self.patient
        if name == "ENCOUNTER":
            return self.encounter
        found = self.assessment.get(name)
        if found is None and not name.startswith("SECTION "):
            found = self.assessment.get(f"SECTION {name}")
        return found

    def lookup(self, section: str, key: str) -> Optional[str]:
        fields = self.section(section)
        if fields is None:
            return None
        return fields.get(key)

    def has_assessment(self) -> bool:
        return any(f.has_data() for f in self.assessment.values())


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    USE = "USE"
    CORRECTION = "CORRECTION"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, code: Optional[str]) -> "Operation":
        # Sin código => crear
        if is_blank(code):
            return cls.CREATE
        try:
            return cls(code.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown operation code: {code!r}") from None


@dataclass
class AdminMetadata:
    fhir_pat_id: Optional[str] = None
    fhir_pat_key: Optional[str] = None
    pat_oper: Optional[str] = None
    fhir_enc_id: Optional[str] = None
    fhir_enc_key: Optional[str] = None
    enc_oper: Optional[str] = None
    fhir_asm_id: Optional[str] = None
    rec_id: Optional[str] = None
    asm_oper: Optional[str] = None
    asm_type: Optional[str] = None
    fiscal: Optional[str] = None
    quarter: Optional[str] = None

    @classmethod
    def from_record(cls, record: ParsedRecord) -> "AdminMetadata":
        if record is None:
            raise ValueError("record is required")
        a = record.admin
        return cls(
            fhir_pat_id=a.get("fhirPatID"),
            fhir_pat_key=a.get("fhirPatKey"),
            pat_oper=a.get("patOper"),
            fhir_enc_id=a.get("fhirEncID"),
            fhir_enc_key=a.get("fhirEncKey"),
            enc_oper=a.get("encOper"),
            fhir_asm_id=a.get("fhirAsmID"),
            rec_id=a.get("recId") or a.get("rec_id"),
            asm_oper=a.get("asmOper"),
            asm_type=a.get("asmType"),
            fiscal=a.get("fiscal"),
            quarter=a.get("quarter"),
        )

    @property
    def patient_operation(self) -> Operation:
        return Operation.parse(self.pat_oper)

    @property
    def encounter_operation(self) -> Operation:
        return Operation.parse(self.enc_oper)

    @property
    def assessment_operation(self) -> Operation:
        return Operation.parse(self.asm_oper)


@dataclass
class ResourceIds:
    patient: Optional[str] = None
    encounter: Optional[str] = None
    questionnaire_response: Optional[str] = None
