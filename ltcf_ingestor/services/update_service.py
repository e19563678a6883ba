# ltcf_ingestor/services/update_service.py
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.parsers.models import AdminMetadata, Operation
from ltcf_ingestor.parsers.outcome import ElementMap, outcome_notes

PASS = "PASS"
FAIL = "FAIL"
INITIAL_ASSESSMENT_TYPES = ("FIRST", "INITIAL", "ADMISSION", "RETURN")
STATUS_OPERATIONS = (Operation.CREATE, Operation.CORRECTION, Operation.DELETE)


class IdTarget(Protocol):
    def patient_id(self, key: Optional[str]) -> Optional[str]: ...

    def encounter_id(self, key: Optional[str]) -> Optional[str]: ...

    def update_patient(self, key: str, patient_id: str): ...

    def update_encounter(self, key: str, encounter_id: str): ...

    def update_assessment(self, rec_id: str, assessment_id: str): ...

    def update_submission_status(self, rec_id: str, status: str): ...

    def update_section_notes(self, rec_id: str, notes: Dict[str, List[str]]): ...


def is_initial_assessment(asm_type: Optional[str]) -> bool:
    if is_blank(asm_type):
        return True
    t = asm_type.strip().upper()
    return any(t.startswith(prefix) for prefix in INITIAL_ASSESSMENT_TYPES)


class UpdateService:
    def __init__(self, target: IdTarget, element_map: Optional[ElementMap] = None):
        self.target = target
        self.element_map = element_map or ElementMap()

    def fill_saved_ids(self, admin: AdminMetadata) -> AdminMetadata:
        """Completa ids de paciente/encuentro guardados para evaluaciones de seguimiento."""
        if is_initial_assessment(admin.asm_type):
            return admin
        changes = {}
        if is_blank(admin.fhir_pat_id):
            saved = self.target.patient_id(admin.fhir_pat_key)
            if saved:
                changes["fhir_pat_id"] = saved
        if is_blank(admin.fhir_enc_id):
            saved = self.target.encounter_id(admin.fhir_enc_key)
            if saved:
                changes["fhir_enc_id"] = saved
        if changes:
            logger.info(f"Ids recuperados del almacén: {changes}")
            return replace(admin, **changes)
        return admin

    def apply(self, admin: AdminMetadata, passed: bool, response_text: Optional[str] = None) -> int:
        """Aplica las actualizaciones según operación y resultado; retorna cuántas hizo.

        En FAIL guarda las notas por sección sacadas del OperationOutcome de la respuesta.
        """
        applied = 0
        if passed:
            if (
                admin.patient_operation == Operation.CREATE
                and not is_blank(admin.fhir_pat_key)
                and not is_blank(admin.fhir_pat_id)
            ):
                self.target.update_patient(admin.fhir_pat_key, admin.fhir_pat_id)
                applied += 1
            if (
                admin.encounter_operation == Operation.CREATE
                and not is_blank(admin.fhir_enc_key)
                and not is_blank(admin.fhir_enc_id)
            ):
                self.target.update_encounter(admin.fhir_enc_key, admin.fhir_enc_id)
                applied += 1
            if (
                admin.assessment_operation == Operation.CREATE
                and not is_blank(admin.rec_id)
                and not is_blank(admin.fhir_asm_id)
            ):
                self.target.update_assessment(admin.rec_id, admin.fhir_asm_id)
                applied += 1

        if admin.assessment_operation in STATUS_OPERATIONS and not is_blank(admin.rec_id):
            self.target.update_submission_status(admin.rec_id, PASS if passed else FAIL)
            applied += 1
        if not passed and not is_blank(admin.rec_id):
            self.target.update_section_notes(admin.rec_id, outcome_notes(response_text, self.element_map))
            applied += 1
        return applied
