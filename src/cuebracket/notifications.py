"""Notification channel between the engine and its UI."""

import logging

import click

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier: logs everything and confirms destructive actions."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, title: str, message: str) -> None:
        logger.warning("%s: %s", title, message)

    def confirm(self, title: str, message: str) -> bool:
        logger.info("%s: %s (auto-confirmed)", title, message)
        return True


class ConsoleNotifier(Notifier):
    """Terminal notifier used by the CLI.

    Args:
        assume_yes: Skip confirmation prompts (--yes)
    """

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes

    def success(self, message: str) -> None:
        click.echo(f"[OK] {message}")

    def error(self, title: str, message: str) -> None:
        click.echo(f"[ERROR] {title}: {message}", err=True)

    def confirm(self, title: str, message: str) -> bool:
        if self.assume_yes:
            return True
        return click.confirm(f"{title}: {message}", default=False)


class RecordingNotifier(Notifier):
    """Keeps every notification in memory.

    Args:
        answer: What confirm() returns
    """

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.successes: list[str] = []
        self.errors: list[tuple[str, str]] = []
        self.confirmations: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, title: str, message: str) -> None:
        self.errors.append((title, message))

    def confirm(self, title: str, message: str) -> bool:
        self.confirmations.append((title, message))
        return self.answer
