# ltcf_ingestor/validation/validators.py
from typing import Optional

from pydantic import BaseModel, ValidationInfo, field_validator, model_validator

from ltcf_ingestor.parsers.base import is_folder_safe
from ltcf_ingestor.parsers.models import AdminMetadata, Operation

REQUIRES_ID = (Operation.UPDATE, Operation.DELETE)


class ResourceControl(BaseModel):
    resource: str
    operation: Optional[str] = None
    resource_id: Optional[str] = None

    @field_validator("operation")
    @classmethod
    def _known_operation(cls, v: Optional[str]):
        # Lanza ValueError si el código no es CREATE/UPDATE/USE/CORRECTION/DELETE
        Operation.parse(v)
        return v.strip().upper() if v else v


class AdminValidation(BaseModel):
    patient: ResourceControl
    encounter: ResourceControl
    assessment: ResourceControl
    strict_update_ids: bool = True

    @model_validator(mode="after")
    def _ids_for_updates(self):
        if not self.strict_update_ids:
            return self
        for ctl in (self.patient, self.encounter, self.assessment):
            op = Operation.parse(ctl.operation)
            if op in REQUIRES_ID and not (ctl.resource_id or "").strip():
                raise ValueError(f"{ctl.resource}: {op.value} requires an existing id")
        return self


class RoutingMeta(BaseModel):
    fiscal: Optional[str] = None
    quarter: Optional[str] = None

    @field_validator("fiscal", "quarter")
    @classmethod
    def _folder_safe(cls, v: Optional[str], info: ValidationInfo):
        if v and not is_folder_safe(v):
            raise ValueError(f"{info.field_name} no puede usarse como carpeta: {v!r}")
        return v


def validate_admin_or_raise(admin: AdminMetadata, strict_update_ids: bool = True):
    """Construye el modelo y levanta ValidationError si algo falta/está mal."""
    AdminValidation(
        patient=ResourceControl(resource="Patient", operation=admin.pat_oper, resource_id=admin.fhir_pat_id),
        encounter=ResourceControl(resource="Encounter", operation=admin.enc_oper, resource_id=admin.fhir_enc_id),
        assessment=ResourceControl(
            resource="QuestionnaireResponse", operation=admin.asm_oper, resource_id=admin.fhir_asm_id
        ),
        strict_update_ids=strict_update_ids,
    )
    RoutingMeta(fiscal=admin.fiscal, quarter=admin.quarter)
