"""
Governance bottleneck classification for open pull requests.

The classifier is an ordered list of ``(predicate, label)`` rules evaluated
top to bottom; the first matching rule wins and ``Other`` is the fallback.
Title patterns are evaluated before label checks.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from events.models import PullRequest


class ProcessType(Enum):
    """
    Kind of work a pull request represents.

    Attributes:
        TYPO: Editorial fixes
        WEBSITE: Site and build configuration changes
        EIP_1: Changes to the process document EIP-1
        TOOLING: Dependency bumps and tooling
        NEW_EIP: A new proposal
        STATUS_CHANGE: A status or content update of an existing proposal
        OTHER: Anything else
    """

    TYPO = "Typo"
    WEBSITE = "Website"
    EIP_1 = "EIP-1"
    TOOLING = "Tooling"
    NEW_EIP = "NEW EIP"
    STATUS_CHANGE = "Status Change"
    OTHER = "Other"


RuleCheck = Callable[[str, FrozenSet[str]], bool]


@dataclass(frozen=True)
class BottleneckRule:
    """Single classification rule."""

    name: str
    check: RuleCheck
    label: ProcessType


def title_matches(pattern: str) -> RuleCheck:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda title, labels: bool(compiled.search(title))


def title_is_eip_one_update(title: str, labels: FrozenSet[str]) -> bool:
    return bool(re.search(r"update eip-1[: ]", title, re.IGNORECASE)) or (
        title.strip().lower() == "update eip-1"
    )


def has_label(*names: str) -> RuleCheck:
    wanted = frozenset(name.lower() for name in names)
    return lambda title, labels: not wanted.isdisjoint(labels)


BOTTLENECK_RULES: List[BottleneckRule] = [
    BottleneckRule("typo title", title_matches(r"typo|spelling|grammar|editorial"), ProcessType.TYPO),
    BottleneckRule("website title", title_matches(r"website|jekyll|_config"), ProcessType.WEBSITE),
    BottleneckRule("eip-1 title", title_is_eip_one_update, ProcessType.EIP_1),
    BottleneckRule("dependency bump title", title_matches(r"^bump "), ProcessType.TOOLING),
    BottleneckRule("new proposal label", has_label("c-new"), ProcessType.NEW_EIP),
    BottleneckRule("dependencies label", has_label("dependencies"), ProcessType.TOOLING),
    BottleneckRule("status label", has_label("c-status", "c-update"), ProcessType.STATUS_CHANGE),
]


class BottleneckClassifier:
    """
    Priority-ordered rule classifier.

    Attributes:
        rules (Sequence[BottleneckRule]): Rules in evaluation order
        fallback (ProcessType): Label used when no rule matches
    """

    def __init__(
        self,
        rules: Optional[Sequence[BottleneckRule]] = None,
        fallback: ProcessType = ProcessType.OTHER,
    ):
        self.rules = list(rules) if rules is not None else list(BOTTLENECK_RULES)
        self.fallback = fallback

    @staticmethod
    def _normalize(title: Optional[str], labels: Optional[Iterable[str]]):
        return title or "", frozenset(label.strip().lower() for label in labels or ())

    def classify(self, title: Optional[str], labels: Optional[Iterable[str]] = None) -> str:
        """
        Classify a pull request by title and labels.

        Args:
            title (Optional[str]): Pull request title
            labels (Optional[Iterable[str]]): Pull request labels

        Example:
            classify("Bump lodash from 1.0 to 1.1", []) -> "Tooling"

        Returns:
            str: Label of the first matching rule, or the fallback
        """
        text, label_set = self._normalize(title, labels)
        for rule in self.rules:
            if rule.check(text, label_set):
                return rule.label.value
        return self.fallback.value

    def classify_pull_request(self, pull_request: PullRequest) -> str:
        return self.classify(pull_request.title, pull_request.labels)

    def matching_rules(self, title: Optional[str], labels: Optional[Iterable[str]] = None) -> List[str]:
        """Names of every rule matching, in evaluation order."""
        text, label_set = self._normalize(title, labels)
        return [rule.name for rule in self.rules if rule.check(text, label_set)]
