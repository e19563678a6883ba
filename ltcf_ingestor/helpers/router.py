import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from ltcf_ingestor.commons.fhir_engine import FhirEngine
from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.parsers.base import is_folder_safe
from ltcf_ingestor.parsers.models import AdminMetadata, ParsedRecord
from ltcf_ingestor.transformers.bundle import Bundle

UNKNOWN_BUCKET = "Unknown"
PROCESSED = "Processed"
ERRORED = "Errored"


def bucket_name(value: Optional[str]) -> str:
    # Vacío o inválido como carpeta => Unknown, nunca fuera de transmit_root
    return value.strip() if is_folder_safe(value) else UNKNOWN_BUCKET


class FlowRouter:
    def __init__(self, engine: FhirEngine, cfg):
        self.engine = engine
        self.cfg = cfg
        self.paths = cfg["paths"]

    # flat file -> Bundle
    def transform(self, record: ParsedRecord, admin: Optional[AdminMetadata] = None) -> Bundle:
        return self.engine.build(record, admin)

    def render(self, bundle: Bundle) -> str:
        return self.engine.to_xml(bundle)

    def write_output(self, source: Path, xml_text: str) -> Path:
        out_dir = Path(self.paths["output"])
        out_dir.mkdir(parents=True, exist_ok=True)
        out = out_dir / f"{Path(source).stem}.xml"
        out.write_text(xml_text, encoding="utf-8")
        return out

    def archive_raw(self, direction: str, text: str, tag: str):
        base = Path(self.paths["logs_root"]) / "raw" / direction
        base.mkdir(parents=True, exist_ok=True)
        name = f'{datetime.now().strftime("%Y%m%d_%H%M%S_%f")}_{tag}.xml'
        (base / name).write_text(text, encoding="utf-8")
        return base / name

    def destination(self, admin: Optional[AdminMetadata], passed: bool) -> Path:
        fiscal = bucket_name(admin.fiscal if admin else None)
        quarter = bucket_name(admin.quarter if admin else None)
        return Path(self.paths["transmit_root"]) / fiscal / quarter / (PROCESSED if passed else ERRORED)

    def route_file(self, source: Path, admin: Optional[AdminMetadata], passed: bool) -> Path:
        """Mueve el .dat (y su .xml generado) a <fiscal>/<quarter>/Processed|Errored."""
        source = Path(source)
        dst_dir = self.destination(admin, passed)
        dst_dir.mkdir(parents=True, exist_ok=True)
        moved = dst_dir / source.name
        if source.exists():
            shutil.move(str(source), str(moved))
        companions = [source.with_suffix(".xml"), Path(self.paths["output"]) / f"{source.stem}.xml"]
        for companion in companions:
            if companion.exists() and companion != moved:
                shutil.move(str(companion), str(dst_dir / companion.name))
                break
        logger.info(f"{source.name} -> {dst_dir}")
        return moved

    def save_run_log(self, base_name: str, text: str, passed: bool) -> Path:
        run_dir = Path(self.paths.get("run_logs", "RunLogs")) / (PROCESSED if passed else ERRORED)
        run_dir.mkdir(parents=True, exist_ok=True)
        out = run_dir / f"runlog_{base_name}.xml"
        out.write_text(text or "", encoding="utf-8")
        return out
