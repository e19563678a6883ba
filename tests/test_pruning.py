"""
test_pruning.py

Unit tests for the pruning pass that runs before serialization.

Covers:
- Cascading removal of blank leaves and empty containers.
- Idempotence on hand made trees and on a full questionnaire.
- Root preservation and coded wrappers that keep their code.
"""

import pytest

from ltcf_ingestor.parsers.models import ParsedRecord
from ltcf_ingestor.transformers.builder import build_resource
from ltcf_ingestor.transformers.catalog import DEFAULT_CATALOG
from ltcf_ingestor.transformers.entry import ResourceType
from ltcf_ingestor.transformers.pruning import has_empty_branch, prune
from ltcf_ingestor.transformers.tree import Node, ValueKind, new_container


def leaf(key, value, kind=ValueKind.STRING):
    return Node(key=key, value=value, kind=kind)


def make_tree():
    root = Node(key="QuestionnaireResponse")
    root.add(leaf("status", "completed", ValueKind.CODE))
    section = root.add(new_container("item#A"))
    # pregunta con respuesta vacía
    q1 = section.add(new_container("item#A8"))
    q1.add(Node(key="answer")).add(Node(key="valueCoding")).add(leaf("code", "  ", ValueKind.CODE))
    # pregunta con sistema pero sin código
    q2 = section.add(new_container("item#A11"))
    coding = q2.add(Node(key="answer")).add(Node(key="valueCoding"))
    coding.add(leaf("system", "http://example.org", ValueKind.URI))
    other = root.add(new_container("item#B"))
    other.add(new_container("item#B1")).add(Node(key="answer")).add(leaf("valueInteger", "3", ValueKind.INTEGER))
    return root


# ----------------- Tests -----------------
def test_prune_removes_cascading_empties():
    root = prune(make_tree())
    assert root.find("item#A") is None
    assert root.find("item#B/item#B1/answer/valueInteger").value == "3"
    assert root.find("status").value == "completed"
    assert not has_empty_branch(root)


def test_prune_is_idempotent():
    once = prune(make_tree())
    snapshot = once.to_dict()
    assert prune(once).to_dict() == snapshot


def test_prune_is_idempotent_on_full_questionnaire():
    sample = {ValueKind.INTEGER: "1", ValueKind.DECIMAL: "1.5", ValueKind.DATE: "2024-01-01"}
    assessment = {}
    for f in DEFAULT_CATALOG.get(ResourceType.QUESTIONNAIRE_RESPONSE).fields:
        if f.key:
            assessment.setdefault(f.section, {})[f.key] = sample.get(f.kind, "1")
    # una sección sin datos: su contenedor precreado queda vacío
    assessment.pop("SECTION C", None)
    record = ParsedRecord.from_dicts(assessment=assessment)

    once = prune(build_resource(record, ResourceType.QUESTIONNAIRE_RESPONSE))
    snapshot = once.to_dict()
    assert once.find("item#C") is None
    assert prune(once).to_dict() == snapshot
    assert not has_empty_branch(once)


def test_root_is_never_removed():
    root = Node(key="Patient")
    root.add(Node(key="meta")).add(leaf("profile", None))
    out = prune(root)
    assert out is root
    assert out.children == []


def test_coded_wrapper_with_code_survives():
    root = Node(key="Patient")
    coding = root.add(Node(key="maritalStatus")).add(Node(key="coding"))
    coding.add(leaf("system", "http://example.org", ValueKind.URI))
    coding.add(leaf("code", "M", ValueKind.CODE))
    prune(root)
    assert root.find("maritalStatus/coding/system").value == "http://example.org"


def test_label_only_item_is_removed():
    root = Node(key="QuestionnaireResponse")
    root.add(new_container("item#C"))
    assert has_empty_branch(root)
    prune(root)
    assert root.children == []


def test_prune_null():
    with pytest.raises(ValueError):
        prune(None)
