"""Stable cache keys for generation requests.

Two requests that differ only in whitespace, letter case, mapping key order or
the order of unordered lists (skills, jobs, schools) map to the same key.
"""
import hashlib
import json
from typing import Any, Dict, Mapping, Optional


def _fold(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def normalize_profile(profile: Any) -> Dict[str, Any]:
    """Reduce a resume profile (model or mapping) to its canonical shape.

    Optional fields are always present as empty strings so that leaving one
    out and sending it blank hash the same.
    """
    experience = [
        {
            "company": _fold(_field(exp, "company")),
            "role": _fold(_field(exp, "role")),
            "duration": _fold(_field(exp, "duration")),
            "description": _fold(_field(exp, "description")),
        }
        for exp in _field(profile, "experience") or []
    ]
    experience.sort(key=lambda e: (e["company"], e["role"], e["duration"], e["description"]))

    education = [
        {
            "school": _fold(_field(edu, "school")),
            "degree": _fold(_field(edu, "degree")),
            "year": _fold(_field(edu, "year")),
        }
        for edu in _field(profile, "education") or []
    ]
    education.sort(key=lambda e: (e["school"], e["degree"], e["year"]))

    return {
        "skills": sorted(_fold(skill) for skill in _field(profile, "skills") or []),
        "experience": experience,
        "education": education,
        "summary": _fold(_field(profile, "summary")),
    }


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_key(profile: Any) -> str:
    """Full SHA-256 hex digest of the normalized profile."""
    return _sha256_hex(canonical_json(normalize_profile(profile)))


def _normalize_part(part: Any) -> Any:
    if isinstance(part, (list, tuple, set, frozenset)):
        return sorted(_fold(p) for p in part)
    return _fold(part)


def derive_key(*parts: Any, length: Optional[int] = None) -> str:
    """Hash an ordered tuple of query fields.

    Strings are trimmed and case-folded, ``None`` counts as empty and list
    parts are treated as unordered. ``length`` truncates the hex digest for
    namespaces where a shorter key is acceptable.
    """
    digest = _sha256_hex(canonical_json([_normalize_part(p) for p in parts]))
    return digest if length is None else digest[:length]
