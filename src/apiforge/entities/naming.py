"""URL naming helpers.

Singularization is a heuristic inverse of pluralize(); irregular nouns
("person" -> "persons") do not round-trip.
"""

import re

_VOWEL_Y = re.compile(r"[aeiou]y$")
_SIBILANT = re.compile(r"([sxz]|[cs]h)$")
_SIBILANT_PLURAL = re.compile(r"([sxz]|[cs]h)es$")


def pluralize(name: str) -> str:
    """post -> posts, category -> categories, box -> boxes."""
    if name.endswith("y") and not _VOWEL_Y.search(name):
        return name[:-1] + "ies"
    if _SIBILANT.search(name):
        return name + "es"
    return name + "s"


def singularize(name: str) -> str:
    if name.endswith("ies"):
        return name[:-3] + "y"
    if _SIBILANT_PLURAL.search(name):
        return name[:-2]
    if name.endswith("s"):
        return name[:-1]
    return name


def capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]
