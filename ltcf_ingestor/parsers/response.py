import re
from typing import List

from lxml import etree

from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.parsers.models import ResourceIds
from ltcf_ingestor.transformers.xml_writer import parse_xml

_LOCATION = re.compile(r"(Patient|Encounter|QuestionnaireResponse)/([^/\s?#]+)")
_STATUS_OK = re.compile(r"^\s*2\d\d\b")
_ANY_2XX = re.compile(r"\b2\d\d\b")
_FAILED_SEVERITIES = ("error", "fatal")


def _values(node: etree._Element, path: str) -> List[str]:
    steps = "/".join(f"*[local-name()='{p}']" for p in path.split("/"))
    return [str(v).strip() for v in node.xpath(f"./{steps}/@value")]


def _localname(el: etree._Element) -> str:
    return etree.QName(el).localname


def _heuristic(text: str) -> bool:
    t = text.lower()
    if "operationoutcome" in t and any(f'"{s}"' in t or f"'{s}'" in t for s in _FAILED_SEVERITIES):
        return False
    return "transaction-response" in t and bool(_ANY_2XX.search(t))


def issue_severities(root: etree._Element) -> List[str]:
    return [
        str(v).strip().lower()
        for v in root.xpath(
            ".//*[local-name()='OperationOutcome']/*[local-name()='issue']/*[local-name()='severity']/@value"
        )
    ]


def evaluate_response(text: str) -> bool:
    """True cuando el repositorio aceptó la transacción completa.

    Falla con cualquier issue de OperationOutcome de severidad error o fatal, con una
    raíz que no sea un Bundle ``transaction-response`` y con cualquier status fuera de 2xx.
    """
    if is_blank(text):
        return False
    try:
        root = parse_xml(text)
    except (etree.XMLSyntaxError, ValueError):
        return _heuristic(text)

    if any(s in _FAILED_SEVERITIES for s in issue_severities(root)):
        return False
    if _localname(root) != "Bundle":
        return False
    if _values(root, "type") != ["transaction-response"]:
        return False
    statuses = _values(root, "entry/response/status")
    if not statuses:
        return False
    return all(_STATUS_OK.match(s) for s in statuses)


def extract_resource_ids(text: str) -> ResourceIds:
    ids = ResourceIds()
    if is_blank(text):
        return ids
    try:
        root = parse_xml(text)
        locations = _values(root, "entry/response/location")
    except (etree.XMLSyntaxError, ValueError):
        locations = [m.group(0) for m in _LOCATION.finditer(text)]

    for loc in locations:
        m = _LOCATION.search(loc)
        if not m:
            continue
        rtype, rid = m.groups()
        if rtype == "Patient" and ids.patient is None:
            ids.patient = rid
        elif rtype == "Encounter" and ids.encounter is None:
            ids.encounter = rid
        elif rtype == "QuestionnaireResponse" and ids.questionnaire_response is None:
            ids.questionnaire_response = rid
    return ids
