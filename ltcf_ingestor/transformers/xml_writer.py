from typing import Optional

from lxml import etree

from ltcf_ingestor.transformers.tree import Node

FHIR_NS = "http://hl7.org/fhir"


def _tag(key: str) -> str:
    return f"{{{FHIR_NS}}}{key}"


def to_element(node: Node, parent: Optional[etree._Element] = None) -> etree._Element:
    if parent is None:
        el = etree.Element(_tag(node.key), nsmap={None: FHIR_NS})
    else:
        el = etree.SubElement(parent, _tag(node.key))
    for name, value in node.attributes.items():
        el.set(name, value)
    if node.value is not None:
        el.set("value", node.value)
    for child in node.children:
        to_element(child, el)
    return el


def serialize(node: Node, pretty: bool = True) -> str:
    root = to_element(node)
    data = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=pretty)
    return data.decode("utf-8")


def serialize_bundle(bundle, pretty: bool = True) -> str:
    return serialize(bundle.to_node(), pretty=pretty)


def parse_xml(text: str) -> etree._Element:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)
    data = text.encode("utf-8") if isinstance(text, str) else text
    return etree.fromstring(data, parser=parser)
