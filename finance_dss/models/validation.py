"""
Validation Report Models

Validators never fix input. They describe what is wrong so the caller
(or the user) can correct it.
"""

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Input field with the issue (e.g. 'criteria_comparisons')"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g. 'count_mismatch', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Structural validation (counts, sizes, identifiers)
    Stage 2: Judgement validation (value ranges)
    """

    structure_valid: bool = Field(
        ...,
        description="Did structural validation pass?"
    )
    values_valid: bool = Field(
        ...,
        description="Did judgement validation pass?"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.structure_valid and self.values_valid

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
