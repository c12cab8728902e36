"""
Two-Stage AHP Input Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - STRUCTURAL VALIDATION:
- At least 2 criteria and 2 alternatives
- Unique criterion / alternative ids
- Exactly n(n-1)/2 criteria comparisons
- Exactly m(m-1)/2 alternative comparisons for every criterion
- Comparisons only reference known ids, never compare an element with
  itself and never repeat a pair
- Together these guarantee every off-diagonal matrix cell is filled once

STAGE 2 - JUDGEMENT VALIDATION:
- Every value is a finite number on Saaty's scale [1/9, 9]

Stage 2 only runs when stage 1 passes: value checks are meaningless
for a hierarchy that cannot be built.

IMPORTANT: Validation NEVER silently fixes issues.
Everything is checked before any computation starts.
"""

import math
from typing import Iterable, Optional

from finance_dss.models.ahp import (
    MAX_JUDGEMENT,
    MIN_JUDGEMENT,
    AHPInput,
    PairwiseComparison,
)
from finance_dss.models.validation import ValidationIssue, ValidationResult


# Slack below 1/9 for judgements written as rounded decimals (0.111)
_RECIPROCAL_TOLERANCE = 1e-3


class AHPInputValidator:
    """
    Validates one decision maker's AHP input.

    Stateless; a single instance can be shared.
    """

    def validate(self, ahp_input: AHPInput) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            ahp_input: Criteria, alternatives and judgements to check

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        # Stage 1: Structure
        structure_valid, structure_issues = self._validate_structure(ahp_input)
        all_issues.extend(structure_issues)

        # Only run stage 2 if stage 1 passes
        values_valid = False
        if structure_valid:
            values_valid, value_issues = self._validate_values(ahp_input)
            all_issues.extend(value_issues)

        return ValidationResult(
            structure_valid=structure_valid,
            values_valid=values_valid,
            issues=all_issues,
        )

    def _validate_structure(
        self,
        ahp_input: AHPInput,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Structural validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        criteria_ids = [c.id for c in ahp_input.criteria]
        alternative_ids = [a.id for a in ahp_input.alternatives]
        n = len(criteria_ids)
        m = len(alternative_ids)

        if n < 2:
            issues.append(_error(
                "criteria", "too_few",
                "at least 2 criteria required",
            ))
        if m < 2:
            issues.append(_error(
                "alternatives", "too_few",
                "at least 2 alternatives required",
            ))

        for field, ids in (("criteria", criteria_ids), ("alternatives", alternative_ids)):
            for duplicate in _duplicates(ids):
                issues.append(_error(
                    field, "duplicate_id",
                    f"{field}: id '{duplicate}' is used more than once",
                ))

        # Counts and references are checked even when sizes are too small,
        # so a single report lists everything that needs fixing
        expected = n * (n - 1) // 2
        got = len(ahp_input.criteria_comparisons)
        if got != expected:
            issues.append(_error(
                "criteria_comparisons", "count_mismatch",
                f"criteria comparisons: expected {expected}, got {got}",
            ))
        issues.extend(_check_pairs(
            "criteria_comparisons",
            "criteria comparison",
            ahp_input.criteria_comparisons,
            set(criteria_ids),
        ))

        expected_alt = m * (m - 1) // 2
        known_alternatives = set(alternative_ids)
        for criterion_id in criteria_ids:
            comparisons = ahp_input.alternative_comparisons.get(criterion_id)
            if comparisons is None:
                issues.append(_error(
                    "alternative_comparisons", "missing",
                    f"missing alternative comparisons for criterion: {criterion_id}",
                ))
                continue

            if len(comparisons) != expected_alt:
                issues.append(_error(
                    "alternative_comparisons", "count_mismatch",
                    f"criterion {criterion_id}: expected {expected_alt} "
                    f"comparisons, got {len(comparisons)}",
                ))
            issues.extend(_check_pairs(
                "alternative_comparisons",
                f"criterion {criterion_id}",
                comparisons,
                known_alternatives,
            ))

        for criterion_id in ahp_input.alternative_comparisons:
            if criterion_id not in criteria_ids:
                issues.append(ValidationIssue(
                    field="alternative_comparisons",
                    issue_type="unknown_criterion",
                    message=(
                        f"comparisons given for unknown criterion "
                        f"'{criterion_id}' are ignored"
                    ),
                    severity="warning",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_values(
        self,
        ahp_input: AHPInput,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Judgement validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        groups = [("criteria_comparisons", "criteria comparison", ahp_input.criteria_comparisons)]
        for criterion in ahp_input.criteria:
            groups.append((
                "alternative_comparisons",
                f"criterion {criterion.id}",
                ahp_input.alternative_comparisons.get(criterion.id, []),
            ))

        for field, label, comparisons in groups:
            for comp in comparisons:
                if not math.isfinite(comp.value):
                    issues.append(_error(
                        field, "not_finite",
                        f"{label} {comp.element_a}/{comp.element_b}: "
                        f"value must be a finite number",
                    ))
                elif not (
                    MIN_JUDGEMENT - _RECIPROCAL_TOLERANCE
                    <= comp.value
                    <= MAX_JUDGEMENT
                ):
                    issues.append(_error(
                        field, "out_of_range",
                        f"{label} {comp.element_a}/{comp.element_b}: "
                        f"value {comp.value:g} outside [1/9, 9]",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the front end shows next to the judgement form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All judgements are complete and on the 1-9 scale."

        lines = []

        if result.errors:
            lines.append("❌ The comparison set cannot be evaluated yet:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)


def _error(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )


def _duplicates(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    repeated: list[str] = []
    for element_id in ids:
        if element_id in seen and element_id not in repeated:
            repeated.append(element_id)
        seen.add(element_id)
    return repeated


def _check_pairs(
    field: str,
    label: str,
    comparisons: list[PairwiseComparison],
    known: set[str],
) -> list[ValidationIssue]:
    issues = []
    seen_pairs: set[frozenset] = set()

    for comp in comparisons:
        unknown: Optional[str] = next(
            (e for e in (comp.element_a, comp.element_b) if e not in known),
            None,
        )
        if unknown is not None:
            issues.append(_error(
                field, "unknown_element",
                f"{label}: unknown element '{unknown}'",
            ))
            continue

        if comp.element_a == comp.element_b:
            issues.append(_error(
                field, "self_comparison",
                f"{label}: '{comp.element_a}' is compared with itself",
            ))
            continue

        pair = frozenset((comp.element_a, comp.element_b))
        if pair in seen_pairs:
            issues.append(_error(
                field, "duplicate_pair",
                f"{label}: pair {comp.element_a}/{comp.element_b} is compared more than once",
            ))
        seen_pairs.add(pair)

    return issues
