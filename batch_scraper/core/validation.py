"""ASIN validation utilities.

ASINs are accepted case-insensitively, normalized to uppercase and checked
against the ``B`` + 9 alphanumerics format before any job state is created.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List

import structlog

logger = structlog.get_logger(__name__)

ASIN_PATTERN = re.compile(r"^B[0-9A-Z]{9}$")


@dataclass(frozen=True)
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    error_message: str = ""
    sanitized_value: str = ""


@dataclass
class AsinBatch:
    """Outcome of validating a list of candidate ASINs.

    Attributes:
        valid: Normalized ASINs in first-seen order, duplicates collapsed.
        rejected: Raw inputs that failed validation, in input order.
        duplicates: Number of valid inputs collapsed into an earlier entry.
    """

    valid: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    duplicates: int = 0


def normalize_asin(value: str) -> str:
    """Strip surrounding whitespace and uppercase an ASIN candidate."""
    return value.strip().upper()


def validate_asin(value: Any) -> ValidationResult:
    """Validate a single ASIN candidate.

    Args:
        value: Raw input, usually a string.

    Returns:
        ValidationResult whose sanitized_value is the normalized ASIN.
    """
    if not isinstance(value, str):
        return ValidationResult(is_valid=False, error_message="ASIN must be a string")

    asin = normalize_asin(value)
    if not ASIN_PATTERN.match(asin):
        return ValidationResult(
            is_valid=False,
            error_message="ASIN must be 'B' followed by 9 alphanumeric characters",
        )
    return ValidationResult(is_valid=True, sanitized_value=asin)


def validate_asins(values: Iterable[Any]) -> AsinBatch:
    """Validate, normalize and deduplicate a list of ASIN candidates.

    Args:
        values: Raw inputs in priority order.

    Returns:
        AsinBatch with the accepted ASINs and the rejected inputs.
    """
    batch = AsinBatch()
    seen = set()

    for value in values:
        result = validate_asin(value)
        if not result.is_valid:
            batch.rejected.append(value if isinstance(value, str) else repr(value))
            continue
        if result.sanitized_value in seen:
            batch.duplicates += 1
            continue
        seen.add(result.sanitized_value)
        batch.valid.append(result.sanitized_value)

    if batch.rejected:
        logger.warning(
            "asins_rejected",
            rejected_count=len(batch.rejected),
            sample=batch.rejected[:5],
        )

    return batch
