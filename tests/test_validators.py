import pytest
from pydantic import ValidationError

from ltcf_ingestor.commons.types import MappingCfg, Settings
from ltcf_ingestor.parsers.models import AdminMetadata
from ltcf_ingestor.validation.validators import ResourceControl, validate_admin_or_raise


def test_create_without_ids_is_valid():
    validate_admin_or_raise(AdminMetadata(pat_oper="CREATE", fiscal="2024", quarter="Q1"))


def test_update_requires_id():
    with pytest.raises(ValidationError):
        validate_admin_or_raise(AdminMetadata(enc_oper="UPDATE"))
    validate_admin_or_raise(AdminMetadata(enc_oper="UPDATE", fhir_enc_id="E-1"))
    # modo permisivo: el id se genera al construir
    validate_admin_or_raise(AdminMetadata(enc_oper="UPDATE"), strict_update_ids=False)


def test_delete_requires_id():
    with pytest.raises(ValidationError):
        validate_admin_or_raise(AdminMetadata(asm_oper="delete", fhir_asm_id="  "))


def test_unknown_operation():
    with pytest.raises(ValidationError):
        ResourceControl(resource="Patient", operation="MERGE")
    assert ResourceControl(resource="Patient", operation=" use ").operation == "USE"


def test_routing_values_must_be_folder_safe():
    with pytest.raises(ValidationError):
        validate_admin_or_raise(AdminMetadata(fiscal="2024/25"))
    for bad in ("..", "../../escaped"):
        with pytest.raises(ValidationError):
            validate_admin_or_raise(AdminMetadata(fiscal="2024", quarter=bad))


def test_settings_defaults():
    s = Settings.model_validate({"paths": {"transmit_root": "t", "queued": "q", "output": "o"}})
    assert s.app["name"] == "ltcf-ingestor"
    assert s.api is None
    assert s.mapping.hcn_absent_policy == "omit"
    assert s.validation.strict_update_ids
    with pytest.raises(ValidationError):
        MappingCfg(reference_style="absolute")
