from dataclasses import dataclass, field
from typing import List, Optional

from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.parsers.models import AdminMetadata, Operation, ParsedRecord, ResourceIds
from ltcf_ingestor.transformers.builder import build_resource
from ltcf_ingestor.transformers.catalog import DEFAULT_CATALOG, BuildContext, FieldCatalog, MappingOptions
from ltcf_ingestor.transformers.entry import Entry, IdSource, ResourceType, new_id, resolve_id, wrap_entry
from ltcf_ingestor.transformers.pruning import prune
from ltcf_ingestor.transformers.tree import Node

BUNDLE_TYPE = "transaction"
# Orden exigido por el consumidor
ENTRY_ORDER = (ResourceType.ENCOUNTER, ResourceType.QUESTIONNAIRE_RESPONSE, ResourceType.PATIENT)


@dataclass
class Bundle:
    id: str
    entries: List[Entry] = field(default_factory=list)
    ids: ResourceIds = field(default_factory=ResourceIds)
    type: str = BUNDLE_TYPE

    def entry(self, resource_type) -> Optional[Entry]:
        rt = ResourceType.parse(resource_type)
        return next((e for e in self.entries if e.resource_type == rt), None)

    def to_node(self) -> Node:
        root = Node(key="Bundle")
        root.add(Node(key="id", value=self.id))
        root.add(Node(key="type", value=self.type))
        for e in self.entries:
            root.add(e.to_node())
        return root


def resolve_resource_ids(admin: AdminMetadata, id_source: IdSource = new_id) -> ResourceIds:
    return ResourceIds(
        patient=resolve_id(admin.fhir_pat_id, id_source),
        encounter=resolve_id(admin.fhir_enc_id, id_source),
        questionnaire_response=resolve_id(admin.fhir_asm_id, id_source),
    )


def assemble_bundle(
    admin: AdminMetadata,
    patient: Optional[Entry] = None,
    encounter: Optional[Entry] = None,
    questionnaire_response: Optional[Entry] = None,
    bundle_id: Optional[str] = None,
    id_source: IdSource = new_id,
    ids: Optional[ResourceIds] = None,
) -> Bundle:
    if admin is None:
        raise ValueError("admin metadata is required")
    candidates = {
        ResourceType.ENCOUNTER: None if admin.encounter_operation == Operation.USE else encounter,
        ResourceType.QUESTIONNAIRE_RESPONSE: questionnaire_response,
        ResourceType.PATIENT: None if admin.patient_operation == Operation.USE else patient,
    }
    entries = [candidates[rt] for rt in ENTRY_ORDER if candidates[rt] is not None]
    if ids is None:
        ids = ResourceIds(
            patient=patient.resource_id if patient else None,
            encounter=encounter.resource_id if encounter else None,
            questionnaire_response=questionnaire_response.resource_id if questionnaire_response else None,
        )
    return Bundle(id=resolve_id(bundle_id, id_source), entries=entries, ids=ids)


def build_bundle(
    record: ParsedRecord,
    admin: Optional[AdminMetadata] = None,
    options: Optional[MappingOptions] = None,
    id_source: IdSource = new_id,
    catalog: FieldCatalog = DEFAULT_CATALOG,
) -> Bundle:
    """Registro parseado -> Bundle de transacción (Encounter, QuestionnaireResponse, Patient).

    Los ids se resuelven una sola vez al principio para que las referencias cruzadas
    coincidan con los ids de las entradas; se devuelven en ``Bundle.ids``.
    """
    if record is None:
        raise ValueError("record is required")
    admin = admin or AdminMetadata.from_record(record)
    ids = resolve_resource_ids(admin, id_source)
    ctx = BuildContext(record=record, admin=admin, ids=ids, options=options or MappingOptions())

    def _entry(rt: ResourceType, operation: Operation, resource_id: str) -> Entry:
        resource = prune(build_resource(record, rt, ctx, catalog))
        return wrap_entry(resource, operation, resource_id, id_source)

    patient = encounter = questionnaire = None
    if record.patient.has_data() and admin.patient_operation != Operation.USE:
        patient = _entry(ResourceType.PATIENT, admin.patient_operation, ids.patient)
    if record.encounter.has_data() and admin.encounter_operation != Operation.USE:
        encounter = _entry(ResourceType.ENCOUNTER, admin.encounter_operation, ids.encounter)
    if record.has_assessment():
        questionnaire = _entry(
            ResourceType.QUESTIONNAIRE_RESPONSE, admin.assessment_operation, ids.questionnaire_response
        )

    bundle = assemble_bundle(
        admin,
        patient=patient,
        encounter=encounter,
        questionnaire_response=questionnaire,
        id_source=id_source,
        ids=ids,
    )
    logger.debug(
        f"Bundle {bundle.id}: {[e.resource_type.value for e in bundle.entries]} "
        f"(patient={ids.patient}, encounter={ids.encounter}, asm={ids.questionnaire_response})"
    )
    return bundle
