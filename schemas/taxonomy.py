# schemas/taxonomy.py: Single authoritative taxonomy for RGAA themes and report wording.
"""Centralised taxonomy for the RGAA 4.1 audit.

Theme numbering, evidence flag identifiers and the fixed report wording
are defined here exactly once.  The criterion catalog
(``control_packs/rgaa/v4.1/criteria.json``) references these names; the
loader does not re-declare them.
"""
from __future__ import annotations

from typing import Literal, get_args


# ══════════════════════════════════════════════════════════════════
# RGAA 4.1 themes  (numbering follows the official referential)
# ══════════════════════════════════════════════════════════════════

RgaaTheme = Literal[
    "Images",
    "Cadres",
    "Couleurs",
    "Multimédia",
    "Tableaux",
    "Liens",
    "Scripts",
    "Éléments obligatoires",
    "Structuration de l'information",
    "Présentation de l'information",
    "Formulaires",
    "Navigation",
    "Consultation",
]

ALL_THEMES: tuple[str, ...] = get_args(RgaaTheme)


def theme_of(criterion_id: str) -> str | None:
    """Map a criterion id like ``"9.1"`` to its theme name."""
    head, _, _ = criterion_id.partition(".")
    try:
        number = int(head)
    except ValueError:
        return None
    if 1 <= number <= len(ALL_THEMES):
        return ALL_THEMES[number - 1]
    return None


# ══════════════════════════════════════════════════════════════════
# Evidence flags  (emitted by the evidence extractor, matched by criteria)
# ══════════════════════════════════════════════════════════════════

IMAGE_FLAGS: frozenset[str] = frozenset({
    "ALT_ABSENT",
    "ALT_GENERIC",
    "ALT_TOO_LONG",
    "IMG_IN_LINK_ALT_EMPTY",
    "ROLE_PRESENTATION_SUSPICIOUS",
})

LINK_FLAGS: frozenset[str] = frozenset({
    "EMPTY_LABEL",
    "GENERIC_LABEL",
    "DUPLICATE_LABEL",
    "NEW_WINDOW_NO_WARNING",
})

# Page-level flags live on the heading tree, LEVEL_SKIP on a heading.
HEADING_FLAGS: frozenset[str] = frozenset({
    "NO_H1",
    "MULTIPLE_H1",
    "TITLE_ABSENT",
    "TITLE_GENERIC",
    "LEVEL_SKIP",
})

EVIDENCE_FLAGS: frozenset[str] = IMAGE_FLAGS | LINK_FLAGS | HEADING_FLAGS

DUPLICATE_LABEL = "DUPLICATE_LABEL"

# Selector used for page-level flags that are not tied to one element.
DOCUMENT_SELECTOR = "document"


# ══════════════════════════════════════════════════════════════════
# Report wording
# ══════════════════════════════════════════════════════════════════

LIMIT_BANNER_TEMPLATE = (
    "Ce rapport ne couvre que {covered} critères RGAA sur {total}. "
    "Les {remaining} critères restants nécessitent une vérification manuelle."
)

TOP_ISSUES_LIMIT = 5


def limit_banner(covered: int, total: int) -> str:
    """Render the coverage disclaimer shown at the top of every report."""
    return LIMIT_BANNER_TEMPLATE.format(
        covered=covered,
        total=total,
        remaining=max(total - covered, 0),
    )
