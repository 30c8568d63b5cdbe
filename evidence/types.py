"""Core types for the evidence layer.

Everything a page audit produces for one URL: the rule engine's findings
and the collected element evidence (images, links, heading tree).  The
shapes persist in session files, so every type round-trips through
``to_dict`` / ``from_dict`` with camelCase keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ══════════════════════════════════════════════════════════════════
#  Rule engine findings
# ══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FindingNode:
    """One DOM node a rule matched."""
    target: tuple[str, ...] = ()
    html: str = ""
    failure_summary: str | None = None

    @property
    def selector(self) -> str:
        return " ".join(self.target)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"target": list(self.target), "html": self.html}
        if self.failure_summary is not None:
            d["failureSummary"] = self.failure_summary
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FindingNode:
        target = data.get("target") or ()
        if isinstance(target, str):
            target = (target,)
        return cls(
            target=tuple(target),
            html=data.get("html", ""),
            failure_summary=data.get("failureSummary"),
        )


@dataclass(frozen=True)
class RuleFinding:
    """A single rule outcome (violation, pass or incomplete)."""
    rule_id: str
    severity: str | None = None   # minor | moderate | serious | critical
    description: str = ""
    help_url: str = ""
    elements: tuple[FindingNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "severity": self.severity,
            "description": self.description,
            "helpUrl": self.help_url,
            "elements": [e.to_dict() for e in self.elements],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleFinding:
        # Rule engines report "rule"/"impact"; session files use ruleId/severity.
        return cls(
            rule_id=data.get("ruleId") or data["rule"],
            severity=data.get("severity", data.get("impact")),
            description=data.get("description", ""),
            help_url=data.get("helpUrl", ""),
            elements=tuple(FindingNode.from_dict(e) for e in data.get("elements") or ()),
        )


@dataclass(frozen=True)
class RuleFindings:
    """Rule engine output for one page, or the error it reported instead."""
    violations: tuple[RuleFinding, ...] = ()
    passes: tuple[RuleFinding, ...] = ()
    incomplete: tuple[RuleFinding, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def passed_rule_ids(self) -> frozenset[str]:
        return frozenset(p.rule_id for p in self.passes)

    @classmethod
    def failed(cls, error: str) -> RuleFindings:
        return cls(error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "violations": [f.to_dict() for f in self.violations],
            "passes": [f.to_dict() for f in self.passes],
            "incomplete": [f.to_dict() for f in self.incomplete],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleFindings:
        if data.get("error"):
            return cls(error=str(data["error"]))
        return cls(
            violations=tuple(RuleFinding.from_dict(f) for f in data.get("violations") or ()),
            passes=tuple(RuleFinding.from_dict(f) for f in data.get("passes") or ()),
            incomplete=tuple(RuleFinding.from_dict(f) for f in data.get("incomplete") or ()),
        )


# ══════════════════════════════════════════════════════════════════
#  Collected element evidence
# ══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ImageEvidence:
    selector: str
    src: str = ""
    alt: str | None = None
    alt_status: str = "absent"          # absent | empty | present
    role_presentation: bool = False
    is_in_link: bool = False
    link_href: str | None = None
    flags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "src": self.src,
            "altAttribute": self.alt,
            "altStatus": self.alt_status,
            "rolePresentation": self.role_presentation,
            "isInLink": self.is_in_link,
            "linkHref": self.link_href,
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageEvidence:
        return cls(
            selector=data["selector"],
            src=data.get("src", ""),
            alt=data.get("altAttribute"),
            alt_status=data.get("altStatus", "absent"),
            role_presentation=bool(data.get("rolePresentation", False)),
            is_in_link=bool(data.get("isInLink", False)),
            link_href=data.get("linkHref"),
            flags=tuple(data.get("flags") or ()),
        )


@dataclass(frozen=True)
class LinkEvidence:
    selector: str
    accessible_label: str | None = None
    href: str | None = None
    opens_new_window: bool = False
    has_new_window_warning: bool = False
    flags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "accessibleLabel": self.accessible_label,
            "href": self.href,
            "opensNewWindow": self.opens_new_window,
            "hasNewWindowWarning": self.has_new_window_warning,
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkEvidence:
        return cls(
            selector=data["selector"],
            accessible_label=data.get("accessibleLabel"),
            href=data.get("href"),
            opens_new_window=bool(data.get("opensNewWindow", False)),
            has_new_window_warning=bool(data.get("hasNewWindowWarning", False)),
            flags=tuple(data.get("flags") or ()),
        )


@dataclass(frozen=True)
class HeadingFlag:
    """A heading flag; LEVEL_SKIP carries the levels it jumped between."""
    flag: str
    skip_from: int | None = None
    skip_to: int | None = None

    def to_dict(self) -> str | dict[str, Any]:
        if self.skip_from is None and self.skip_to is None:
            return self.flag
        return {"flag": self.flag, "skipFrom": self.skip_from, "skipTo": self.skip_to}

    @classmethod
    def from_dict(cls, data: str | dict[str, Any]) -> HeadingFlag:
        if isinstance(data, str):
            return cls(flag=data)
        return cls(flag=data["flag"], skip_from=data.get("skipFrom"), skip_to=data.get("skipTo"))


@dataclass(frozen=True)
class HeadingEvidence:
    level: int
    text: str
    selector: str
    flags: tuple[HeadingFlag, ...] = ()

    @property
    def flag_ids(self) -> tuple[str, ...]:
        return tuple(f.flag for f in self.flags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "text": self.text,
            "selector": self.selector,
            "flags": [f.to_dict() for f in self.flags],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeadingEvidence:
        return cls(
            level=int(data["level"]),
            text=data.get("text", ""),
            selector=data["selector"],
            flags=tuple(HeadingFlag.from_dict(f) for f in data.get("flags") or ()),
        )


@dataclass(frozen=True)
class HeadingTree:
    document_title: str = ""
    headings: tuple[HeadingEvidence, ...] = ()
    flags: tuple[str, ...] = ()          # page-level: NO_H1, MULTIPLE_H1, TITLE_*

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentTitle": self.document_title,
            "headings": [h.to_dict() for h in self.headings],
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeadingTree:
        return cls(
            document_title=data.get("documentTitle", ""),
            headings=tuple(HeadingEvidence.from_dict(h) for h in data.get("headings") or ()),
            flags=tuple(data.get("flags") or ()),
        )


@dataclass(frozen=True)
class CollectedEvidence:
    images: tuple[ImageEvidence, ...] = ()
    links: tuple[LinkEvidence, ...] = ()
    headings: HeadingTree = field(default_factory=HeadingTree)

    def to_dict(self) -> dict[str, Any]:
        return {
            "images": [i.to_dict() for i in self.images],
            "links": [link.to_dict() for link in self.links],
            "headings": self.headings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectedEvidence:
        headings = data.get("headings")
        return cls(
            images=tuple(ImageEvidence.from_dict(i) for i in data.get("images") or ()),
            links=tuple(LinkEvidence.from_dict(link) for link in data.get("links") or ()),
            headings=HeadingTree.from_dict(headings) if headings else HeadingTree(),
        )


@dataclass(frozen=True)
class PageEvidence:
    """Raw evidence for one page.  Either half may be missing."""
    findings: RuleFindings | None = None
    collected: CollectedEvidence | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": self.findings.to_dict() if self.findings is not None else None,
            "collected": self.collected.to_dict() if self.collected is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageEvidence:
        findings = data.get("findings")
        collected = data.get("collected")
        return cls(
            findings=RuleFindings.from_dict(findings) if findings is not None else None,
            collected=CollectedEvidence.from_dict(collected) if collected is not None else None,
        )
