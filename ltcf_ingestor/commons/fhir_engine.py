from typing import Any, Optional

import yaml

from ltcf_ingestor.commons.types import MappingCfg
from ltcf_ingestor.parsers.flat_file import parse_flat_file
from ltcf_ingestor.parsers.models import AdminMetadata, ParsedRecord
from ltcf_ingestor.transformers.bundle import Bundle, build_bundle
from ltcf_ingestor.transformers.catalog import DEFAULT_CATALOG, FieldCatalog, MappingOptions
from ltcf_ingestor.transformers.entry import IdSource, new_id
from ltcf_ingestor.transformers.xml_writer import serialize_bundle


class FhirEngine:
    """Fachada del motor: carga la política de mapeo y convierte ficheros planos en XML.

    Acepta la ruta de un settings yaml, un dict ya cargado (settings completo o solo el
    bloque ``mapping``) o nada para usar los valores por defecto.
    """

    def __init__(
        self,
        config_path_or_obj: Any = None,
        id_source: IdSource = new_id,
        catalog: FieldCatalog = DEFAULT_CATALOG,
    ):
        if isinstance(config_path_or_obj, str):
            with open(config_path_or_obj, "r", encoding="utf-8") as f:
                self.cfg = yaml.safe_load(f) or {}
        elif isinstance(config_path_or_obj, dict):
            self.cfg = config_path_or_obj
        else:
            self.cfg = {}

        mapping = self.cfg.get("mapping", self.cfg if "hcn_absent_policy" in self.cfg else {})
        self.options = MappingOptions.from_settings(MappingCfg.model_validate(mapping or {}))
        self.id_source = id_source
        self.catalog = catalog

    def parse(self, text: str) -> ParsedRecord:
        return parse_flat_file(text)

    def build(self, record: ParsedRecord, admin: Optional[AdminMetadata] = None) -> Bundle:
        return build_bundle(record, admin, self.options, self.id_source, self.catalog)

    def to_xml(self, bundle: Bundle) -> str:
        return serialize_bundle(bundle)

    def transform(self, text: str) -> str:
        return self.to_xml(self.build(self.parse(text)))
