# minimentor/field_classifier.py
"""
Rule-based detection of the user's professional field.

The rule table is the domain vocabulary: rules are evaluated in declaration
order and the first one that matches decides the label. A rule label is
either a constant or a function of the regex match.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

SOFTWARE_DEVELOPMENT = "software development"
DESIGN = "design"
DATA_SCIENCE = "data science"
MARKETING = "marketing"
PROJECT_MANAGEMENT = "project management"
FINANCE = "finance"
HUMAN_RESOURCES = "human resources"
SALES = "sales"
EDUCATION = "education"
HEALTHCARE = "healthcare"
LEGAL = "legal"
UNKNOWN_FIELD = "unknown"

LabelResolver = Union[str, Callable[["re.Match[str]"], str]]


@dataclass(frozen=True)
class FieldRule:
    pattern: "re.Pattern[str]"
    label: LabelResolver

    def resolve(self, text: str) -> Optional[str]:
        match = self.pattern.search(text)
        if not match:
            return None
        if callable(self.label):
            return self.label(match)
        return self.label


def _rule(pattern: str, label: LabelResolver) -> FieldRule:
    return FieldRule(re.compile(pattern, re.IGNORECASE), label)


def _captured_field(match: "re.Match[str]") -> str:
    return match.group(1).lower()


FIELD_RULES: tuple[FieldRule, ...] = (
    _rule(r"(?:i am|i'm|as) an? (software|web|frontend|backend|full.?stack) (developer|engineer)", SOFTWARE_DEVELOPMENT),
    _rule(r"(?:i am|i'm|as) an? (ux|ui|product|graphic|visual) (designer)", DESIGN),
    _rule(r"(?:i am|i'm|as) an? (data scientist|data analyst|machine learning|ml|ai)", DATA_SCIENCE),
    _rule(r"(?:i am|i'm|as) an? (marketing|seo|content|social media)", MARKETING),
    _rule(r"(?:i am|i'm|as) an? (project manager|product manager|scrum master|agile coach)", PROJECT_MANAGEMENT),
    _rule(r"(?:i am|i'm|as) an? (finance|accounting|financial)", FINANCE),
    _rule(r"(?:i am|i'm|as) an? (hr|human resources|talent|recruiting)", HUMAN_RESOURCES),
    _rule(r"(?:i am|i'm|as) an? (sales|business development|account)", SALES),
    _rule(r"(?:i am|i'm|as) an? (teacher|professor|educator|instructor)", EDUCATION),
    _rule(r"(?:i am|i'm|as) an? (healthcare|doctor|nurse|medical)", HEALTHCARE),
    _rule(r"(?:i am|i'm|as) an? (legal|lawyer|attorney)", LEGAL),
    _rule(r"(?:i work|working) in (software|tech|design|marketing|finance|healthcare|education|legal|sales)", _captured_field),
    _rule(r"(?:my field is|my industry is|my sector is) (software|tech|design|marketing|finance|healthcare|education|legal|sales)", _captured_field),
)


def classify(text: str | None, rules: Iterable[FieldRule] = FIELD_RULES) -> Optional[str]:
    """Return the label of the first matching rule, or None."""
    if not text:
        return None
    content = text.lower()
    for rule in rules:
        label = rule.resolve(content)
        if label:
            return label
    return None


def classify_history(texts: Iterable[str], rules: Iterable[FieldRule] = FIELD_RULES) -> Optional[str]:
    """First label found while scanning texts in order."""
    rules = tuple(rules)
    for text in texts:
        label = classify(text, rules)
        if label:
            return label
    return None
