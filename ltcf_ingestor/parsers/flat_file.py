from pathlib import Path
from typing import Dict, Union

from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.parsers.base import NAMED_SECTIONS, section_header, split_pair
from ltcf_ingestor.parsers.models import FieldMap, ParsedRecord


def parse_flat_file(text: str) -> ParsedRecord:
    """Parsea un fichero plano LTCF.

    [ADMIN]
    patOper=CREATE
    [PATIENT]
    A5A=1234567890
    [SECTION A]
    A8=1
    """
    if text is None:
        raise ValueError("flat file text is required")

    sections: Dict[str, Dict[str, str]] = {}
    current = None
    for n, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        header = section_header(line)
        if header:
            current = sections.setdefault(header, {})
            continue
        pair = split_pair(line)
        if pair is None:
            logger.debug(f"Línea {n} ignorada (sin '='): {line!r}")
            continue
        if current is None:
            logger.warning(f"Línea {n} fuera de sección ignorada: {line!r}")
            continue
        key, value = pair
        current[key] = value

    record = ParsedRecord(
        admin=FieldMap(sections.get("ADMIN")),
        patient=FieldMap(sections.get("PATIENT")),
        encounter=FieldMap(sections.get("ENCOUNTER")),
        assessment={
            name: FieldMap(values)
            for name, values in sections.items()
            if name not in NAMED_SECTIONS
        },
    )
    return record


def parse_flat_file_path(path: Union[str, Path]) -> ParsedRecord:
    text = Path(path).read_text(encoding="utf-8-sig")
    return parse_flat_file(text)
