# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Validation Gate - Classify rows as blocked, warned or clean before any remote mutation
"""
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from models import Row, ValidationResult

logger = logging.getLogger(__name__)

RowCheck = Callable[[Row], Optional[str]]


class Classification(Enum):
    """Possible gate outcomes for a row"""
    BLOCKED = "blocked"  # One or more errors, never acted on
    WARNED = "warned"    # Warnings only, acted on after confirmation
    CLEAN = "clean"      # Nothing to report


class ValidationGate:
    """Runs ordered error and warning checks over rows"""

    def evaluate(
        self,
        row: Row,
        error_checks: Sequence[RowCheck],
        warning_checks: Sequence[RowCheck]
    ) -> ValidationResult:
        """
        Run every check against a row

        Each check returns a message when its condition is violated and None
        otherwise. All checks run, in the order given, so the caller sees
        every problem at once. The row is not modified.
        """
        errors = self._run_checks(row, error_checks)
        warnings = self._run_checks(row, warning_checks)
        return ValidationResult(errors, warnings)

    def apply(
        self,
        rows: Sequence[Row],
        error_checks: Sequence[RowCheck],
        warning_checks: Sequence[RowCheck]
    ) -> Dict[str, ValidationResult]:
        """Evaluate rows and attach the result to each row's errors/warnings"""
        results = {}
        for row in rows:
            result = self.evaluate(row, error_checks, warning_checks)
            row.errors = list(result.errors)
            row.warnings = list(result.warnings)
            results[row.row_id] = result
        return results

    @staticmethod
    def classify(result: ValidationResult) -> Classification:
        if result.errors:
            return Classification.BLOCKED
        if result.warnings:
            return Classification.WARNED
        return Classification.CLEAN

    def _run_checks(self, row: Row, checks: Sequence[RowCheck]) -> List[str]:
        messages = []
        for check in checks:
            message = check(row)
            if message:
                logger.debug(f"{row.label}: {getattr(check, '__name__', check)} -> {message}")
                messages.append(message)
        return messages
