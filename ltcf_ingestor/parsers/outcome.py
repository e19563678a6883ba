"""OperationOutcome -> notas de error por sección del LTCF.

Cada issue se asigna a una sola sección:
- por su iCode (``details/coding`` con sistema interRAI-iCode, o el primer token ``iA9`` del
  texto) resuelto contra el mapa de elementos;
- sin iCode, por el primer código de elemento (``A8``, ``B3b``) del mensaje.

Si ninguna issue se resuelve, todas las secciones reciben la nota genérica.
"""
import re
from dataclasses import dataclass
from string import ascii_uppercase
from typing import Dict, List, Optional, Tuple

import yaml
from lxml import etree

from ltcf_ingestor.commons.logger import logger
from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.transformers.xml_writer import parse_xml

ICODE_SYSTEM_MARK = "interrai-icode"
DEFAULT_MESSAGE = "Validation error returned by CIHI."
FALLBACK_NOTE = (
    "Unknown exception occurred when submitting to CIHI. "
    "Please contact administrator and see runlog for more details."
)

_ICODE = re.compile(r"\b[iI][A-Z][0-9]+[a-z]?\b")
_ELEMENT = re.compile(r"\b[A-Z][0-9]{1,3}[a-z]?\b")
_ELEMENT_CODE = re.compile(r"^[A-Z][0-9]+[a-z]?$")

# La sección S se guarda en R
SECTION_ALIASES = {"S": "R"}
ALL_SECTIONS = tuple(dict.fromkeys(SECTION_ALIASES.get(c, c) for c in ascii_uppercase))


def section_letter(section: Optional[str]) -> Optional[str]:
    if is_blank(section):
        return None
    letter = section.strip()[0].upper()
    if not "A" <= letter <= "Z":
        return None
    return SECTION_ALIASES.get(letter, letter)


@dataclass(frozen=True)
class ElementInfo:
    section: str
    code: str = ""
    name: str = ""


class ElementMap:
    """iCode -> sección, código de elemento y nombre.

    Formato yaml::

        iU2: {section: R7, name: Discharge date}
        iA9: {section: A9, db_section: A}

    Acepta también la forma ``cihiA9``. Un iCode sin entrada se resuelve por su propio
    código: ``iB3b`` es el elemento B3b de la sección B.
    """

    def __init__(self, entries: Optional[Dict[str, dict]] = None):
        self.entries: Dict[str, ElementInfo] = {}
        for key, raw in (entries or {}).items():
            self.add(str(key), raw or {})

    @classmethod
    def from_yaml(cls, path: Optional[str]) -> "ElementMap":
        if not path:
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            return cls(yaml.safe_load(f) or {})

    def add(self, key: str, raw: dict):
        section = str(raw.get("section") or "").strip()
        db_section = str(raw.get("db_section") or "").strip()
        letter = section_letter(db_section or section)
        if letter is None:
            logger.warning(f"Elemento {key!r} sin sección válida, se ignora")
            return
        code = next((c for c in (db_section, section) if _ELEMENT_CODE.match(c)), "")
        info = ElementInfo(letter, code, str(raw.get("name") or "").strip())
        k = key.strip().casefold()
        self.entries[k] = info
        if k.startswith("cihi"):
            self.entries.setdefault("i" + k[4:], info)
        elif k.startswith("i"):
            self.entries.setdefault("cihi" + k[1:], info)

    def resolve(self, icode: Optional[str]) -> Optional[ElementInfo]:
        if is_blank(icode):
            return None
        key = icode.strip()
        found = self.entries.get(key.casefold())
        if found is not None:
            return found
        for prefix in ("cihi", "i"):
            if key.casefold().startswith(prefix):
                element = key[len(prefix):]
                if _ELEMENT_CODE.match(element):
                    return ElementInfo(section_letter(element), element)
        return None


@dataclass
class OutcomeIssue:
    message: str
    icode: Optional[str] = None
    severity: Optional[str] = None


def _value(el: etree._Element, name: str) -> Optional[str]:
    found = el.xpath(f"./*[local-name()='{name}']/@value")
    return str(found[0]).strip() if found else None


def _icode(issue: etree._Element, message: str) -> Optional[str]:
    # details/coding primero, luego cualquier coding de la issue
    for scope in ("./*[local-name()='details']//", ".//"):
        for coding in issue.xpath(f"{scope}*[local-name()='coding']"):
            system = (_value(coding, "system") or "").casefold()
            code = _value(coding, "code")
            if ICODE_SYSTEM_MARK in system and code:
                return code
    m = _ICODE.search(message)
    return m.group(0) if m else None


def extract_issues(root: etree._Element) -> List[OutcomeIssue]:
    """Issues de todo OperationOutcome (raíz o dentro de entradas del Bundle)."""
    issues = []
    for issue in root.xpath(
        "descendant-or-self::*[local-name()='OperationOutcome']/*[local-name()='issue']"
    ):
        texts = [_value(c, "display") for c in issue.xpath(".//*[local-name()='coding']")]
        texts = [t for t in texts if t]
        diagnostics = _value(issue, "diagnostics")
        if diagnostics:
            texts.append(diagnostics)
        message = texts[0] if texts else DEFAULT_MESSAGE
        issues.append(OutcomeIssue(message, _icode(issue, message), _value(issue, "severity")))
    return issues


def _rewrite(message: str, element_map: ElementMap) -> str:
    replacements: Dict[str, str] = {}
    for m in _ICODE.finditer(message):
        info = element_map.resolve(m.group(0))
        replacement = info and (info.code or info.name)
        if replacement:
            replacements.setdefault(m.group(0), replacement)
    # el más largo primero: iA9a antes que iA9
    for token in sorted(replacements, key=len, reverse=True):
        message = re.sub(rf"\b{re.escape(token)}\b", replacements[token], message, flags=re.IGNORECASE)
    return message


def _with_label(message: str, info: ElementInfo) -> str:
    code, name = info.code, info.name
    if not code and not name:
        return message
    text = message.casefold()
    if code and name and code.casefold() in text and name.casefold() in text:
        return message
    label = f"{code} - {name}" if code and name else code or name
    return f"{message} [Element: {label}]"


def route_issue(issue: OutcomeIssue, element_map: ElementMap) -> Tuple[Optional[str], str]:
    if issue.icode:
        info = element_map.resolve(issue.icode)
        if info is None:
            return None, issue.message
        return info.section, _with_label(_rewrite(issue.message, element_map), info)
    m = _ELEMENT.search(issue.message)
    if m:
        return section_letter(m.group(0)), issue.message
    return None, issue.message


def outcome_notes(text: Optional[str], element_map: Optional[ElementMap] = None) -> Dict[str, List[str]]:
    """Notas por sección para una respuesta rechazada.

    Sin issues resolubles (cuerpo vacío, no XML, o issues sin elemento) devuelve la nota
    genérica para todas las secciones.
    """
    element_map = element_map or ElementMap()
    notes: Dict[str, List[str]] = {}
    issues: List[OutcomeIssue] = []
    if not is_blank(text):
        try:
            issues = extract_issues(parse_xml(text))
        except (etree.XMLSyntaxError, ValueError):
            logger.warning("Respuesta no es XML; se marcan todas las secciones")
    for issue in issues:
        section, message = route_issue(issue, element_map)
        if section and message not in notes.setdefault(section, []):
            notes[section].append(message)
    if not notes:
        return {s: [FALLBACK_NOTE] for s in ALL_SECTIONS}
    return notes
