"""
Attribute-based access policy.

A PolicyFilter runs an ordered tuple of independent checks against one
document's attributes and the requester's context:

  * any DENY rejects the document immediately (remaining checks are skipped)
  * NO_OPINION means "not applicable here" and evaluation continues
  * ALLOW is recorded in the trail but never overrides a later DENY
  * if nothing denies, the document is admitted

Checks are small objects implementing PolicyCheck. New rules are added with
PolicyFilter.with_check(), which returns a new filter and leaves the existing
checks untouched. Evaluation is a pure function of (attributes, context, checks).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from scoped_rag.config import Settings, settings
from scoped_rag.pipelines.models import CheckResult, Decision, PolicyVerdict

SENSITIVITY_CONFIDENTIAL = "confidential"
SENSITIVITY_INTERNAL = "internal"
SENSITIVITY_PUBLIC = "public"


class PolicyEvaluationError(Exception):
    """A check produced something other than a Decision. Never raised for unknown tiers."""


class PolicyCheck(ABC):
    name: str = "check"

    @abstractmethod
    def evaluate(self, attributes: Mapping[str, str], context: Mapping[str, str]) -> CheckResult:
        """Return ALLOW, DENY or NO_OPINION for one document/context pair."""

    def _result(self, decision: Decision, reason: str = "") -> CheckResult:
        return CheckResult(check=self.name, decision=decision, reason=reason)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


# ---------------------------------------------------------------------------
# Built-in checks
# ---------------------------------------------------------------------------


class AttributeMatchCheck(PolicyCheck):
    """
    Deny when the context and the document both carry a value and they differ.

    If either side lacks the key the check abstains. A document without the
    attribute is therefore visible to every context (open policy choice).
    """

    def __init__(self, name: str, attribute_key: str, context_key: str | None = None) -> None:
        self.name = name
        self.attribute_key = attribute_key
        self.context_key = context_key or attribute_key

    def evaluate(self, attributes: Mapping[str, str], context: Mapping[str, str]) -> CheckResult:
        if self.context_key not in context:
            return self._result(Decision.NO_OPINION, f"context has no {self.context_key}")
        if self.attribute_key not in attributes:
            return self._result(
                Decision.NO_OPINION, f"document has no {self.attribute_key} attribute"
            )

        required = context[self.context_key]
        actual = attributes[self.attribute_key]
        if actual != required:
            return self._result(
                Decision.DENY,
                f"{self.attribute_key} mismatch (doc={actual}, requester={required})",
            )
        return self._result(Decision.ALLOW, f"{self.attribute_key} matched ({actual})")


class SensitivityTierCheck(PolicyCheck):
    """
    confidential: requester department is privileged, or requester identity is privileged
    internal    : requester carries any identity at all
    anything else (public, absent, unknown tier): no opinion
    """

    name = "sensitivity"

    def __init__(
        self,
        sensitivity_key: str = "sensitivity",
        department_key: str = "department",
        identity_key: str = "user_id",
        privileged_departments: Iterable[str] = ("IT",),
        privileged_identities: Iterable[str] = ("123",),
    ) -> None:
        self.sensitivity_key = sensitivity_key
        self.department_key = department_key
        self.identity_key = identity_key
        self.privileged_departments = frozenset(privileged_departments)
        self.privileged_identities = frozenset(privileged_identities)

    def evaluate(self, attributes: Mapping[str, str], context: Mapping[str, str]) -> CheckResult:
        tier = attributes.get(self.sensitivity_key)

        if tier == SENSITIVITY_CONFIDENTIAL:
            if context.get(self.department_key) in self.privileged_departments:
                return self._result(Decision.ALLOW, "privileged department for confidential")
            if context.get(self.identity_key) in self.privileged_identities:
                return self._result(Decision.ALLOW, "privileged identity for confidential")
            return self._result(Decision.DENY, "not authorized for 'confidential' document")

        if tier == SENSITIVITY_INTERNAL:
            if self.identity_key in context:
                return self._result(Decision.ALLOW, "identified requester for internal")
            return self._result(
                Decision.DENY, f"'internal' document requires {self.identity_key} in context"
            )

        if tier is None:
            return self._result(Decision.NO_OPINION, "no sensitivity attribute")
        if tier == SENSITIVITY_PUBLIC:
            return self._result(Decision.NO_OPINION, "public document")
        return self._result(Decision.NO_OPINION, f"tier {tier!r} treated as public")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class PolicyFilter:
    def __init__(self, checks: Iterable[PolicyCheck] = ()) -> None:
        self._checks: tuple[PolicyCheck, ...] = tuple(checks)

    @property
    def checks(self) -> tuple[PolicyCheck, ...]:
        return self._checks

    def with_check(self, check: PolicyCheck) -> PolicyFilter:
        """Return a new filter with check appended to the evaluation order."""
        return PolicyFilter((*self._checks, check))

    def evaluate(
        self, attributes: Mapping[str, str], context: Mapping[str, str]
    ) -> PolicyVerdict:
        results: list[CheckResult] = []
        for check in self._checks:
            result = check.evaluate(attributes, context)
            if not isinstance(result, CheckResult) or not isinstance(result.decision, Decision):
                raise PolicyEvaluationError(
                    f"check {check!r} returned {result!r}, expected a CheckResult"
                )
            results.append(result)
            if result.decision is Decision.DENY:
                return PolicyVerdict(admitted=False, denied_by=check.name, results=tuple(results))
        return PolicyVerdict(admitted=True, results=tuple(results))

    def admits(self, attributes: Mapping[str, str], context: Mapping[str, str]) -> bool:
        return self.evaluate(attributes, context).admitted

    def __len__(self) -> int:
        return len(self._checks)


def build_policy_filter(config: Settings = settings) -> PolicyFilter:
    """The default rule set: identity match, location match, sensitivity tier."""
    return PolicyFilter(
        [
            AttributeMatchCheck("identity", config.identity_key),
            AttributeMatchCheck("location", config.location_key),
            SensitivityTierCheck(
                sensitivity_key=config.sensitivity_key,
                department_key=config.department_key,
                identity_key=config.identity_key,
                privileged_departments=config.privileged_departments,
                privileged_identities=config.privileged_identities,
            ),
        ]
    )
