"""
Typed refusals raised at the builder / validator boundary.

Low-confidence classification is not an error: the classifier always
returns a usable (possibly ``unknown``) result and flags it through
``QueryClassification.is_ambiguous``.
"""
from __future__ import annotations


class UnsupportedDomainError(ValueError):
    """The builder was asked to compile a classification it has no template for."""

    code = "unsupported_domain"

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Cannot build a query for domain '{domain}'")


class SecurityRejectedError(ValueError):
    """SQL failed the safety checks and must not be executed.

    Carries the violation messages only, never the SQL text itself.
    """

    code = "security_rejected"

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__(f"SQL rejected by safety checks ({len(self.violations)} violation(s))")
