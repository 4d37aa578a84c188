# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Notifier - How the core talks to whoever is driving it
"""
import logging
from typing import List, Sequence

from models import Row

logger = logging.getLogger(__name__)


class Notifier:
    """Abstract notifier - to be implemented by the hosting UI"""

    def confirm(self, message: str) -> bool:
        raise NotImplementedError

    def show_message(self, message: str):
        raise NotImplementedError

    def show_summary(self, rows: Sequence[Row]):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """
    Headless notifier that writes everything to the log

    Used by the scheduler and HTTP surface, where nobody can answer a
    confirmation prompt; ``auto_confirm`` decides the answer.
    """

    def __init__(self, auto_confirm: bool = False):
        self.auto_confirm = auto_confirm
        self.messages: List[str] = []

    def confirm(self, message: str) -> bool:
        logger.info(f"Confirmation requested (auto-answer {'yes' if self.auto_confirm else 'no'}):\n{message}")
        return self.auto_confirm

    def show_message(self, message: str):
        self.messages.append(message)
        logger.info(message)

    def show_summary(self, rows: Sequence[Row]):
        for row in rows:
            if row.errors:
                logger.info(f"{row.label}: errors={row.errors} warnings={row.warnings}")
            elif row.warnings:
                logger.info(f"{row.label}: warnings={row.warnings}")
            else:
                logger.info(f"{row.label}: ok")
