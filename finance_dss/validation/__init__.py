"""Input validation package."""

from finance_dss.validation.validator import AHPInputValidator

__all__ = ["AHPInputValidator"]
