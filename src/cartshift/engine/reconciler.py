"""
Automatic destination -> source field mapping.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

# Hand-authored equivalences. Each entry is a group: the key and every listed
# name are interchangeable, in either direction.
DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    "postcode": ["zip", "zipcode", "postal_code"],
    "address_1": ["address1", "street"],
    "address_2": ["address2"],
    "state": ["province", "province_code"],
    "country": ["country_code"],
    "name": ["title"],
    "description": ["body_html"],
    "short_description": ["summary_html", "excerpt"],
    "content": ["body_html"],
    "regular_price": ["price"],
    "slug": ["handle"],
    "phone": ["phone_number"],
    "email": ["email_address"],
    "date_expires": ["ends_at"],
    "timezone_string": ["iana_timezone", "timezone"],
}


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def build_synonym_lookup(synonyms: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
    """Lower-cased name -> every name it is equivalent to, in table order."""
    lookup: Dict[str, List[str]] = {}
    for canonical, names in synonyms.items():
        group = [canonical.lower()] + [name.lower() for name in names]
        for member in group:
            equivalents = lookup.setdefault(member, [])
            for other in group:
                if other != member and other not in equivalents:
                    equivalents.append(other)
    return lookup


def match_source_field(
    dest_field: str,
    source_fields: Sequence[str],
    synonym_lookup: Optional[Dict[str, List[str]]] = None,
) -> str:
    """
    Find the source field for one destination field.

    Tries, in order: case-insensitive exact match, case-insensitive match
    ignoring underscores, then synonyms. Returns "" when nothing matches.
    """
    lowered = dest_field.lower()
    for source in source_fields:
        if source.lower() == lowered:
            return source

    normalized = _normalize(dest_field)
    for source in source_fields:
        if _normalize(source) == normalized:
            return source

    for synonym in (synonym_lookup or {}).get(lowered, []):
        for source in source_fields:
            if source.lower() == synonym:
                return source

    return ""


def reconcile_fields(
    dest_fields: Sequence[str],
    source_fields: Sequence[str],
    existing: Optional[Mapping[str, str]] = None,
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> Dict[str, str]:
    """
    Fill in a destination -> source field map.

    Destination fields already mapped to a non-empty source field keep their
    value. Every other destination field gets an automatic match or "".
    Keys no longer offered by the destination are dropped, unless the
    destination list is empty, which is treated as "schema unknown" and
    leaves the existing map alone.

    Args:
        dest_fields: Live destination field list
        source_fields: Live source field list
        existing: Current map (destination field -> source field)
        synonyms: Equivalence table; defaults to DEFAULT_SYNONYMS

    Returns:
        New map; running it again with the same inputs returns the same map
    """
    lookup = build_synonym_lookup(DEFAULT_SYNONYMS if synonyms is None else synonyms)
    result: Dict[str, str] = dict(existing or {})

    for dest_field in dest_fields:
        if result.get(dest_field):
            continue
        result[dest_field] = match_source_field(dest_field, source_fields, lookup)

    if not dest_fields:
        logger.debug("Destination field list is empty; keeping existing mappings")
        return result

    live = set(dest_fields)
    pruned = [key for key in result if key not in live]
    for key in pruned:
        del result[key]
    if pruned:
        logger.info(f"Pruned mappings for fields the destination no longer offers: {pruned}")

    return result
