"""Heuristics for turning fact text into graph structure.

Both rules are deliberately crude: Portuguese phrase patterns for
relationships and a name-shape guess for entity types. A miss is normal
and only logged at debug level.
"""

import re
from collections.abc import Callable

from ..enums import EntityType, RelationshipType
from ..logging import get_logger
from ..schemas import ExtractedRelationship

logger = get_logger(__name__)

EntityClassifier = Callable[[str], EntityType]

_ROLES = r"(?:diretor[a]?|gerente|ceo|cto|cfo|cmo|cpo|cso)"

# Group 1 is always the target entity
RELATIONSHIP_PATTERNS: list[tuple[re.Pattern, RelationshipType]] = [
    # "é diretor/CTO/gerente de X"
    (
        re.compile(rf"é\s+(?:o\s+)?{_ROLES}\s+(?:d[aoe]|da)\s+(.+)", re.IGNORECASE),
        RelationshipType.WORKS_AT,
    ),
    # "Diretora do X", "CFO das X"
    (
        re.compile(rf"^{_ROLES}\s+(?:d[aoe]|das?)\s+(.+)", re.IGNORECASE),
        RelationshipType.WORKS_AT,
    ),
    # "Diretor: X"
    (re.compile(r"diretor[a]?\s*:\s*(.+)", re.IGNORECASE), RelationshipType.WORKS_AT),
    (
        re.compile(r"trabalha\s+(?:na|no|em)\s+(.+)", re.IGNORECASE),
        RelationshipType.WORKS_AT,
    ),
    (
        re.compile(r"faz\s+parte\s+(?:da|do)\s+(.+)", re.IGNORECASE),
        RelationshipType.PART_OF,
    ),
    (
        re.compile(r"cuida\s+(?:da|do|de)\s+(.+)", re.IGNORECASE),
        RelationshipType.RESPONSIBLE_FOR,
    ),
    (
        re.compile(r"é\s+responsável\s+(?:por|pela|pelo)\s+(.+)", re.IGNORECASE),
        RelationshipType.RESPONSIBLE_FOR,
    ),
    (re.compile(r"lidera\s+(?:a|o)?\s*(.+)", re.IGNORECASE), RelationshipType.MANAGES),
    (re.compile(r"é\s+dono\s+(?:da|do)\s+(.+)", re.IGNORECASE), RelationshipType.OWNS),
    (re.compile(r"fundou\s+(?:a|o)?\s*(.+)", re.IGNORECASE), RelationshipType.OWNS),
    (
        re.compile(r"gerencia\s+(?:a|o)?\s*(.+)", re.IGNORECASE),
        RelationshipType.MANAGES,
    ),
    (
        re.compile(r"coordena\s+(?:a|o)?\s*(.+)", re.IGNORECASE),
        RelationshipType.MANAGES,
    ),
]

COMPANY_INDICATORS = re.compile(
    r"holding|base|sales|contratos|ltda|s\.a\.|inc\.|team", re.IGNORECASE
)

_TRAILING_PUNCTUATION = re.compile(r"[.,:;!?\"']+$")
_EDGE_QUOTES = re.compile(r"^[\"']|[\"']$")


def infer_entity_type(name: str) -> EntityType:
    """All-caps names and names with company words are companies; the rest people."""
    if name == name.upper() and len(name) > 2:
        return EntityType.COMPANY
    if COMPANY_INDICATORS.search(name):
        return EntityType.COMPANY
    return EntityType.PERSON


def _clean_target(raw: str) -> str:
    target = _TRAILING_PUNCTUATION.sub("", raw.strip())
    return _EDGE_QUOTES.sub("", target).strip()


def extract_relationships(
    fact_content: str, subject_name: str
) -> list[ExtractedRelationship]:
    results = []
    for pattern, relationship_type in RELATIONSHIP_PATTERNS:
        match = pattern.search(fact_content)
        if not match or not match.group(1).strip():
            continue

        target = _clean_target(match.group(1))
        if len(target) < 2 or target.lower() == subject_name.lower():
            continue

        results.append(
            ExtractedRelationship(
                target=target, relationship_type=relationship_type.value
            )
        )
        logger.debug(
            "Relationship extracted from fact",
            source=subject_name,
            target=target,
            relationship_type=relationship_type.value,
        )
    return results
