# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Command Dispatcher - Gate rows, confirm with the user, then act on the actionable ones
"""
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from models import Row
from remote.errors import is_transient
from sync.notifier import Notifier
from sync.validator import Classification, RowCheck, ValidationGate
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)

RowAction = Callable[[Row, Any], Any]


class DispatchResult:
    """What happened to each row during one command"""

    def __init__(self, command: str, rows: Sequence[Row] = ()):
        self.command = command
        self.rows = list(rows)
        self.blocked: List[Row] = []
        self.warned: List[Row] = []
        self.clean: List[Row] = []
        self.applied: List[Row] = []
        self.failed: List[Tuple[Row, Exception]] = []
        self.queued: List[str] = []
        self.queue_errors: List[Tuple[Row, Exception]] = []
        self.aborted = False
        self.message = ''

    @property
    def actionable(self) -> List[Row]:
        return [row for row in self.rows if row in self.warned or row in self.clean]

    def to_dict(self):
        return {
            'command': self.command,
            'blocked': [row.row_id for row in self.blocked],
            'warned': [row.row_id for row in self.warned],
            'clean': [row.row_id for row in self.clean],
            'applied': [row.row_id for row in self.applied],
            'failed': [{'row_id': row.row_id, 'error': str(error)} for row, error in self.failed],
            'queued': list(self.queued),
            'queue_errors': [{'row_id': row.row_id, 'error': str(error)} for row, error in self.queue_errors],
            'aborted': self.aborted,
        }


def build_summary(rows: Sequence[Row], verb: str = "scheduled") -> str:
    """
    Human-readable summary of a gated selection

    Blocked rows are listed with their errors, warned rows with their
    warnings, then the clean rows.
    """
    message = ""

    blocked = [row for row in rows if row.errors]
    if blocked:
        message += f"These rides had errors and will not be {verb}:\n"
        message += "\n".join(f"{row.label}: {error}" for row in blocked for error in row.errors)
        message += "\n\n"

    warned = [row for row in rows if not row.errors and row.warnings]
    if warned:
        message += f"These rides had warnings but can be {verb}:\n"
        message += "\n".join(f"{row.label}: {warning}" for row in warned for warning in row.warnings)
        message += "\n\n"

    clean = [row for row in rows if not row.errors and not row.warnings]
    if clean:
        message += f"These rides had neither errors nor warnings and can be {verb}:\n"
        message += "\n".join(row.label for row in clean)
        message += "\n\n"

    return message


class CommandDispatcher:
    """Implements the gate-then-act protocol shared by every row command"""

    def __init__(self, notifier: Notifier, gate: Optional[ValidationGate] = None, retry_queue=None):
        self.notifier = notifier
        self.gate = gate or ValidationGate()
        self.retry_queue = retry_queue
        self.structured_logger = StructuredLogger(__name__)

    def process_rows(
        self,
        rows: Sequence[Row],
        error_checks: Sequence[RowCheck],
        warning_checks: Sequence[RowCheck],
        remote: Any,
        action: RowAction,
        force: bool = False,
        command: str = "schedule",
        verb: str = "scheduled"
    ) -> DispatchResult:
        """
        Gate the rows and apply ``action`` to those without errors

        Args:
            rows: Selected rows, in the order the user sees them
            error_checks: Checks whose messages block a row
            warning_checks: Checks whose messages need confirmation
            remote: Whatever the action needs to reach the remote service
            action: Called as action(row, remote) once per actionable row
            force: Skip the confirmation prompt
            command: Name used in logs
            verb: Past participle used in the summary ("cancelled", ...)

        Returns:
            DispatchResult describing the outcome for every row
        """
        result = DispatchResult(command, rows)

        results = self.gate.apply(rows, error_checks, warning_checks)
        for row in rows:
            classification = self.gate.classify(results[row.row_id])
            if classification is Classification.BLOCKED:
                result.blocked.append(row)
            elif classification is Classification.WARNED:
                result.warned.append(row)
            else:
                result.clean.append(row)

        message = build_summary(rows, verb)
        result.message = message
        self.notifier.show_summary(rows)

        actionable = result.actionable
        if not rows:
            self.notifier.show_message(f"No rows selected. Select the rides to be {verb} first.")
            result.aborted = True
            self._log(result)
            return result

        if not actionable:
            self.notifier.show_message(message + "All selected rides have errors that need to be fixed first.")
            result.aborted = True
            self._log(result)
            return result

        if not force:
            prompt = message + f"Do you want to continue with the {len(actionable)} ride(s) that can be {verb}?"
            if not self.notifier.confirm(prompt):
                logger.info(f"{command}: declined by user, nothing changed")
                result.aborted = True
                self._log(result)
                return result

        for row in actionable:
            try:
                action(row, remote)
                result.applied.append(row)
            except Exception as e:
                logger.error(f"{command} failed for {row.label}: {type(e).__name__}: {e}")
                result.failed.append((row, e))
                self._queue_retry(row, e, result)

        if result.failed:
            lines = "\n".join(f"{row.label}: {error}" for row, error in result.failed)
            if result.queue_errors:
                lines += "\n\nAutomatic retry could not be queued for: "
                lines += ", ".join(row.label for row, _ in result.queue_errors)
            self.notifier.show_message(f"{len(result.failed)} ride(s) could not be {verb}:\n{lines}")

        self._log(result)
        return result

    def _queue_retry(self, row: Row, error: Exception, result: DispatchResult):
        operation = getattr(error, 'operation', None)
        if self.retry_queue is None or not operation or not is_transient(error):
            return
        operation = dict(operation)
        operation.setdefault('row_id', row.row_id)
        operation.setdefault('ride_url', row.ride_url)
        operation.setdefault('ride_title', row.ride_name)
        try:
            item = self.retry_queue.enqueue(operation)
        except Exception as e:
            logger.error(f"Could not queue retry for {row.label}: {type(e).__name__}: {e}")
            result.queue_errors.append((row, e))
            return
        result.queued.append(item.id)
        logger.info(f"Queued {item.operation_type} for {row.label} for retry as {item.id}")

    def _log(self, result: DispatchResult):
        self.structured_logger.log_command(
            result.command,
            blocked=len(result.blocked),
            warned=len(result.warned),
            clean=len(result.clean),
            applied=len(result.applied),
            failed=len(result.failed),
            aborted=result.aborted,
        )
