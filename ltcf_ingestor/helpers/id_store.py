from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ltcf_ingestor.commons.logger import logger

PATIENTS = "patients"
ENCOUNTERS = "encounters"
ASSESSMENTS = "assessments"
STATUSES = "submission_status"
NOTES = "section_notes"


class IdStore:
    """Ids asignados por el repositorio, guardados en un yaml entre ejecuciones.

    patients:   {fhirPatKey: id}
    encounters: {fhirEncKey: id}
    assessments: {recId: id}
    submission_status: {recId: {status, updated}}
    section_notes: {recId: {sección: [mensajes]}}
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.data: Dict[str, Dict] = {PATIENTS: {}, ENCOUNTERS: {}, ASSESSMENTS: {}, STATUSES: {}, NOTES: {}}
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            for k in self.data:
                self.data[k].update(loaded.get(k) or {})

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.data, f, sort_keys=True, allow_unicode=True)

    def _put(self, table: str, key: str, value):
        self.data[table][str(key)] = value
        self.save()

    def patient_id(self, key: Optional[str]) -> Optional[str]:
        return self.data[PATIENTS].get(str(key)) if key else None

    def encounter_id(self, key: Optional[str]) -> Optional[str]:
        return self.data[ENCOUNTERS].get(str(key)) if key else None

    def assessment_id(self, rec_id: Optional[str]) -> Optional[str]:
        return self.data[ASSESSMENTS].get(str(rec_id)) if rec_id else None

    def submission_status(self, rec_id: Optional[str]) -> Optional[str]:
        entry = self.data[STATUSES].get(str(rec_id)) if rec_id else None
        return entry["status"] if entry else None

    def update_patient(self, key: str, patient_id: str):
        logger.info(f"Paciente {key} -> {patient_id}")
        self._put(PATIENTS, key, patient_id)

    def update_encounter(self, key: str, encounter_id: str):
        logger.info(f"Encuentro {key} -> {encounter_id}")
        self._put(ENCOUNTERS, key, encounter_id)

    def update_assessment(self, rec_id: str, assessment_id: str):
        logger.info(f"Evaluación {rec_id} -> {assessment_id}")
        self._put(ASSESSMENTS, rec_id, assessment_id)

    def update_submission_status(self, rec_id: str, status: str):
        self._put(STATUSES, rec_id, {"status": status, "updated": datetime.now().isoformat(timespec="seconds")})

    def section_notes(self, rec_id: Optional[str]) -> Dict[str, List[str]]:
        return dict(self.data[NOTES].get(str(rec_id)) or {}) if rec_id else {}

    def update_section_notes(self, rec_id: str, notes: Dict[str, List[str]]):
        logger.warning(f"Evaluación {rec_id}: errores en secciones {sorted(notes)}")
        self._put(NOTES, rec_id, {section: list(messages) for section, messages in notes.items()})
