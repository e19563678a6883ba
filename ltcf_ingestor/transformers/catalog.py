"""Catálogo de campos: dónde cae cada campo del fichero plano en los recursos FHIR.

Las rutas son nombres de etiqueta separados por barras, desde la raíz del recurso hasta
la hoja. Un segmento puede llevar sufijo ``#grupo`` para que contenedores hermanos con la
misma etiqueta no se mezclen (``identifier#hcn`` frente a ``identifier#case``); en los
contenedores ``item`` el grupo es también el ``linkId``, escrito como primer hijo.

Los campos con origen o derivados anclan sus contenedores: una constante (url de perfil,
sistema de codificación) solo se escribe si algún campo anclado bajo el mismo contenedor
de primer nivel resolvió un valor.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from ltcf_ingestor.commons.errors import UnsupportedResourceError
from ltcf_ingestor.parsers.models import AdminMetadata, Operation, ParsedRecord, ResourceIds
from ltcf_ingestor.transformers.entry import ResourceType, full_url
from ltcf_ingestor.transformers.tree import ValueKind, split_path

PATIENT_PROFILE = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-patient"
ENCOUNTER_PROFILE = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-encounter"
LOCATION_ADMISSION_PROFILE = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-location-admission"
LOCATION_DISCHARGE_PROFILE = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-location-discharge"
BIRTH_SEX_EXT = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-ext-birth-sex"
DATA_ABSENT_EXT = "http://cihi.ca/fhir/irrs/StructureDefinition/irrs-ext-data-absent-reason"
V2_0203 = "http://hl7.org/fhir/v2/0203"
ON_HCN_SYSTEM = "https://fhir.infoway-inforoute.ca/NamingSystem/ca-on-patient-hcn"
PROVINCE_HCN_SYSTEM = "https://fhir.infoway-inforoute.ca/NamingSystem/ca-{province}-patient-healthcare-id"
CASE_ID_SYSTEM = "http://acme.vendor.com/facility-cm"
SUBMISSION_ID_SYSTEM = "http://cihi.ca/fhir/NamingSystem/cihi-submission-identifier"
MOH_SUBMISSION_SYSTEM = (
    "http://cihi.ca/fhir/NamingSystem/"
    "on-ministry-of-health-and-long-term-care-submission-identifier"
)
QUESTIONNAIRE_REF = "Questionnaire/irrs-ltcf"

HCN_OMIT = "omit"
HCN_DATA_ABSENT = "data-absent-reason"
REFERENCE_RELATIVE = "relative"
REFERENCE_FULL_URL = "full-url"


@dataclass(frozen=True)
class MappingOptions:
    hcn_absent_policy: str = HCN_OMIT
    hcn_sentinels: Dict[str, str] = field(default_factory=lambda: {"unknown": "unknown"})
    reference_style: str = REFERENCE_RELATIVE

    @classmethod
    def from_settings(cls, cfg) -> "MappingOptions":
        if cfg is None:
            return cls()
        if isinstance(cfg, dict):
            return cls(**cfg)
        return cls(
            hcn_absent_policy=cfg.hcn_absent_policy,
            hcn_sentinels=dict(cfg.hcn_sentinels),
            reference_style=cfg.reference_style,
        )


@dataclass
class BuildContext:
    record: ParsedRecord
    admin: AdminMetadata = field(default_factory=AdminMetadata)
    ids: ResourceIds = field(default_factory=ResourceIds)
    options: MappingOptions = field(default_factory=MappingOptions)


Derive = Callable[[BuildContext], Optional[str]]
Predicate = Callable[[BuildContext], bool]


@dataclass(frozen=True)
class FieldSpec:
    path: str
    kind: ValueKind = ValueKind.CODE
    key: Optional[str] = None
    section: Optional[str] = None
    value: Optional[str] = None
    derive: Optional[Derive] = None
    when: Optional[Predicate] = None
    anchor: Optional[bool] = None
    gate: Optional[str] = None

    @property
    def segments(self) -> List[str]:
        return split_path(self.path)

    @property
    def is_constant(self) -> bool:
        return self.key is None and self.derive is None

    @property
    def is_anchor(self) -> bool:
        if self.anchor is not None:
            return self.anchor
        return not self.is_constant or self.when is not None

    @property
    def gate_path(self) -> str:
        if self.gate is not None:
            return self.gate
        segs = self.segments
        return segs[0] if len(segs) > 1 else ""


@dataclass(frozen=True)
class ContainerSpec:
    path: str
    attributes: Tuple[Tuple[str, str], ...] = ()
    precreate: bool = False


CatalogEntry = Union[FieldSpec, ContainerSpec]


@dataclass(frozen=True)
class ResourceCatalog:
    resource_type: ResourceType
    entries: Tuple[CatalogEntry, ...]

    @property
    def fields(self) -> Iterator[FieldSpec]:
        return (e for e in self.entries if isinstance(e, FieldSpec))

    @property
    def containers(self) -> Dict[str, ContainerSpec]:
        return {e.path: e for e in self.entries if isinstance(e, ContainerSpec)}


@dataclass(frozen=True)
class FieldCatalog:
    resources: Dict[ResourceType, ResourceCatalog]

    def get(self, resource_type) -> ResourceCatalog:
        rt = ResourceType.parse(resource_type)
        found = self.resources.get(rt)
        if found is None:
            raise UnsupportedResourceError(rt.value)
        return found

    def keys(self, resource_type) -> List[str]:
        return [f.key for f in self.get(resource_type).fields if f.key]


# ----------------- derivaciones -----------------
def reference_to(resource_type: ResourceType, resource_id: Optional[str], ctx: BuildContext):
    if not resource_id:
        return None
    if ctx.options.reference_style == REFERENCE_FULL_URL:
        op = {
            ResourceType.PATIENT: ctx.admin.pat_oper,
            ResourceType.ENCOUNTER: ctx.admin.enc_oper,
        }.get(resource_type)
        return full_url(resource_type, resource_id, Operation.parse(op))
    return f"{resource_type.value}/{resource_id}"


def patient_reference(ctx: BuildContext) -> Optional[str]:
    return reference_to(ResourceType.PATIENT, ctx.ids.patient, ctx)


def encounter_reference(ctx: BuildContext) -> Optional[str]:
    return reference_to(ResourceType.ENCOUNTER, ctx.ids.encounter, ctx)


def _hcn(ctx: BuildContext) -> Optional[str]:
    return ctx.record.lookup("PATIENT", "A5A")


def hcn_value(ctx: BuildContext) -> Optional[str]:
    value = _hcn(ctx)
    if value is None or value in ctx.options.hcn_sentinels:
        return None
    return value


def hcn_absent_reason(ctx: BuildContext) -> Optional[str]:
    value = _hcn(ctx)
    if value is None or ctx.options.hcn_absent_policy != HCN_DATA_ABSENT:
        return None
    return ctx.options.hcn_sentinels.get(value)


def hcn_system(ctx: BuildContext) -> Optional[str]:
    province = ctx.record.lookup("PATIENT", "A5B")
    # 0 = desconocido, 1 = no aplica
    if province is None or province in ("0", "1") or province.upper() == "ON":
        return ON_HCN_SYSTEM
    return PROVINCE_HCN_SYSTEM.format(province=province.lower())


def present(section: str, key: str) -> Predicate:
    return lambda ctx: ctx.record.lookup(section, key) is not None


# ----------------- Patient -----------------
PATIENT_ENTRIES: Tuple[CatalogEntry, ...] = (
    FieldSpec("meta/profile", ValueKind.URI, value=PATIENT_PROFILE, anchor=True),
    ContainerSpec("extension#birthSex", attributes=(("url", BIRTH_SEX_EXT),)),
    FieldSpec("extension#birthSex/valueCode", key="A2A", section="PATIENT"),
    ContainerSpec("identifier#hcn/extension#absent", attributes=(("url", DATA_ABSENT_EXT),)),
    FieldSpec("identifier#hcn/extension#absent/valueCode", derive=hcn_absent_reason),
    FieldSpec("identifier#hcn/type/coding/system", ValueKind.URI, value=V2_0203),
    FieldSpec("identifier#hcn/type/coding/code", value="JHN"),
    FieldSpec(
        "identifier#hcn/system",
        ValueKind.URI,
        derive=hcn_system,
        when=lambda ctx: hcn_value(ctx) is not None,
        anchor=False,
    ),
    FieldSpec("identifier#hcn/value", ValueKind.STRING, derive=hcn_value),
    FieldSpec("identifier#case/type/coding/system", ValueKind.URI, value=V2_0203),
    FieldSpec("identifier#case/type/coding/code", value="MR"),
    FieldSpec("identifier#case/system", ValueKind.URI, value=CASE_ID_SYSTEM),
    FieldSpec("identifier#case/value", ValueKind.STRING, key="A5C", section="PATIENT"),
    FieldSpec("birthDate", ValueKind.DATE, key="A3", section="PATIENT"),
    FieldSpec("address/use", value="home"),
    FieldSpec("address/postalCode", ValueKind.STRING, key="B6", section="PATIENT"),
    FieldSpec("maritalStatus/coding/code", key="A4", section="PATIENT"),
    FieldSpec("communication/language/coding/code", key="B4", section="PATIENT"),
    FieldSpec("managingOrganization/identifier/system", ValueKind.URI, value=SUBMISSION_ID_SYSTEM),
    FieldSpec("managingOrganization/identifier/value", ValueKind.STRING, key="OrgID", section="PATIENT"),
)

# ----------------- Encounter -----------------
ENCOUNTER_ENTRIES: Tuple[CatalogEntry, ...] = (
    FieldSpec("meta/profile", ValueKind.URI, value=ENCOUNTER_PROFILE, anchor=True),
    FieldSpec("contained#admittedFrom/Location/id", ValueKind.STRING, value="admittedFrom"),
    FieldSpec("contained#admittedFrom/Location/meta/profile", ValueKind.URI, value=LOCATION_ADMISSION_PROFILE),
    FieldSpec("contained#admittedFrom/Location/type/coding/code", key="B5A", section="ENCOUNTER"),
    FieldSpec(
        "contained#admittedFrom/Location/managingOrganization/identifier/value",
        ValueKind.STRING,
        key="B5B",
        section="ENCOUNTER",
    ),
    FieldSpec("contained#dischargedTo/Location/id", ValueKind.STRING, value="dischargedTo"),
    FieldSpec("contained#dischargedTo/Location/meta/profile", ValueKind.URI, value=LOCATION_DISCHARGE_PROFILE),
    FieldSpec("contained#dischargedTo/Location/type/coding/code", key="R2", section="ENCOUNTER"),
    FieldSpec(
        "contained#dischargedTo/Location/managingOrganization/identifier/value",
        ValueKind.STRING,
        key="R4",
        section="ENCOUNTER",
    ),
    FieldSpec("status", value="planned"),
    FieldSpec("subject/reference", ValueKind.STRING, derive=patient_reference),
    FieldSpec("period/start", ValueKind.DATE, key="B2", section="ENCOUNTER"),
    FieldSpec("period/end", ValueKind.DATE, key="R1", section="ENCOUNTER"),
    FieldSpec("hospitalization/origin/reference", ValueKind.STRING, value="#admittedFrom", gate="contained#admittedFrom"),
    FieldSpec(
        "hospitalization/destination/reference", ValueKind.STRING, value="#dischargedTo", gate="contained#dischargedTo"
    ),
    FieldSpec("serviceProvider/identifier/system", ValueKind.URI, value=MOH_SUBMISSION_SYSTEM),
    FieldSpec("serviceProvider/identifier/value", ValueKind.STRING, key="OrgID", section="ENCOUNTER"),
)


# ----------------- QuestionnaireResponse -----------------
def _seq(prefix: str, suffixes: str) -> Tuple[str, ...]:
    return tuple(prefix + s for s in suffixes)


# Cada sección: preguntas sueltas o (grupo, preguntas)
QUESTIONNAIRE_LAYOUT: Tuple[Tuple[str, tuple], ...] = (
    ("A", (("A2", ("A2b",)), "A8", "A9", ("A10g", ("A10", "A10a")), "A11")),
    ("B", ("B1", ("B3", _seq("B3", "abc")), ("B5", ("B5c",)), "B7", ("B8", _seq("B8", "abcdef")), "B9", "B10")),
    ("C", ("C1", ("C2", _seq("C2", "abcd")), ("C3", _seq("C3", "abc")), "C4", "C5")),
    ("D", ("D1", "D2", ("D3", _seq("D3", "ab")), ("D4", _seq("D4", "ab")))),
    ("E", _seq("E1", "abcdefghijk") + _seq("E2", "abc") + _seq("E3", "abcdef")),
    ("F", _seq("F1", "abc") + _seq("F2", "abcdefg") + _seq("F3", "abcde") + ("F4",) + _seq("F5", "abc")),
    ("G", _seq("G1", "abcdefghij") + _seq("G2", "abcd") + _seq("G3", "ab") + _seq("G4", "ab") + ("G5",)),
    ("H", ("H1", "H2", "H3", "H4")),
    ("I", _seq("I1", "abcdefghijklmnopqrstu") + (("I2", ("I2aa", "I2ab")),)),
    (
        "J",
        (
            ("J1", _seq("J1", "abc")),
            ("J2", _seq("J2", "abcdefghijklmnopqrstu")),
            "J3",
            "J4",
            ("J5", _seq("J5", "abcde")),
            ("J6", _seq("J6", "abc")),
            "J7",
            ("J8", _seq("J8", "ab")),
        ),
    ),
    ("K", (("K1", _seq("K1", "ab")), ("K2", _seq("K2", "abcdef")), "K3", "K4", ("K5", _seq("K5", "abcdef")))),
    ("L", tuple(f"L{i}" for i in range(1, 8))),
    ("M", ("M1", ("M2", _seq("M2", "abcdefghijklmnop")), "M3")),
    ("N", ("N2", "N3", "N4", "N5", "N6", ("N7", _seq("N7", "abcd")), "N8", "N9", "N10")),
    (
        "O",
        (
            ("O1", _seq("O1", "abcdefgh")),
            ("O2", _seq("O2", "abcdefghijklmn")),
            ("O3", tuple(f"O3{t}{c}" for t in "abcdefg" for c in "abc")),
            ("O4", _seq("O4", "ab")),
            "O5",
            "O6",
            ("O7", _seq("O7", "abc")),
        ),
    ),
    ("P", (("P1", _seq("P1", "ab")), ("P2", _seq("P2", "ab")))),
    ("Q", (("Q1", _seq("Q1", "abc")), "Q2")),
    ("R", ("R1", "R2", "R3", "R4", "R5")),
    ("S", ("S2",)),
)

QUESTION_KINDS: Dict[str, ValueKind] = {
    "A9": ValueKind.DATE,
    "A10": ValueKind.STRING,
    "A10a": ValueKind.STRING,
    "G2b": ValueKind.INTEGER,
    "I2ab": ValueKind.STRING,
    "K1a": ValueKind.INTEGER,
    "K1b": ValueKind.DECIMAL,
    "N3": ValueKind.INTEGER,
    "N4": ValueKind.INTEGER,
    "O4a": ValueKind.INTEGER,
    "O4b": ValueKind.INTEGER,
    "O5": ValueKind.INTEGER,
    "O6": ValueKind.INTEGER,
    "S2": ValueKind.DATE,
    **{f"O3{t}{c}": ValueKind.INTEGER for t in "abcdefg" for c in "abc"},
}

# La meta expresada solo cuelga de la meta principal
QUESTION_CONDITIONS: Dict[str, Callable[[str], Predicate]] = {
    "A10a": lambda section: present(section, "A10"),
}

ANSWER_TAGS: Dict[ValueKind, str] = {
    ValueKind.CODE: "valueCoding/code",
    ValueKind.INTEGER: "valueInteger",
    ValueKind.DECIMAL: "valueDecimal",
    ValueKind.DATE: "valueDate",
    ValueKind.STRING: "valueString",
}


def question_field(section_letter: str, prefix: str, link_id: str) -> FieldSpec:
    kind = QUESTION_KINDS.get(link_id, ValueKind.CODE)
    section = f"SECTION {section_letter}"
    condition = QUESTION_CONDITIONS.get(link_id)
    return FieldSpec(
        f"{prefix}/item#{link_id}/answer/{ANSWER_TAGS[kind]}",
        kind,
        key=link_id,
        section=section,
        when=condition(section) if condition else None,
    )


def questionnaire_entries() -> Tuple[CatalogEntry, ...]:
    entries: List[CatalogEntry] = [
        FieldSpec("questionnaire/reference", ValueKind.STRING, value=QUESTIONNAIRE_REF, anchor=True),
        FieldSpec("status", value="completed"),
        FieldSpec("subject/reference", ValueKind.STRING, derive=patient_reference),
        FieldSpec("context/reference", ValueKind.STRING, derive=encounter_reference),
    ]
    for letter, questions in QUESTIONNAIRE_LAYOUT:
        section_path = f"item#{letter}"
        entries.append(ContainerSpec(section_path, precreate=True))
        for q in questions:
            if isinstance(q, tuple):
                group, members = q
                for link_id in members:
                    entries.append(question_field(letter, f"{section_path}/item#{group}", link_id))
            else:
                entries.append(question_field(letter, section_path, q))
    return tuple(entries)


DEFAULT_CATALOG = FieldCatalog(
    resources={
        ResourceType.PATIENT: ResourceCatalog(ResourceType.PATIENT, PATIENT_ENTRIES),
        ResourceType.ENCOUNTER: ResourceCatalog(ResourceType.ENCOUNTER, ENCOUNTER_ENTRIES),
        ResourceType.QUESTIONNAIRE_RESPONSE: ResourceCatalog(
            ResourceType.QUESTIONNAIRE_RESPONSE, questionnaire_entries()
        ),
    }
)
