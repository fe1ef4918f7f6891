"""Sequential phase execution with checkpointing."""

from typing import Callable, Dict, Sequence, Tuple

from rich.rule import Rule

from gickinstaller.models import PhaseRecord

PhaseEntry = Tuple[str, Callable[[], object]]


class PhaseRunner:
    """Runs phases strictly in order and records each one that completes.

    A completed phase is reported and skipped. The first failing phase
    stops the run; nothing is rolled back and re-running resumes from the
    first phase not yet recorded.
    """

    def __init__(self, state_service, logger, console):
        self.state_service = state_service
        self.logger = logger
        self.console = console

    def run(self, phases: Sequence[PhaseEntry], record: PhaseRecord) -> Dict[str, str]:
        names = [name for name, _ in phases]
        if tuple(names) != tuple(record.phases):
            raise ValueError(f"Phase list {names} does not match record {list(record.phases)}")

        outcome: Dict[str, str] = {}
        total = len(phases)
        for index, (name, entry_point) in enumerate(phases, start=1):
            title = name.replace("_", " ").title()
            if record.is_completed(name):
                self.console.print(f"[dim]Phase {index}/{total}: {title} already completed.[/dim]")
                self.logger.info("Phase %s already completed; skipping.", name)
                outcome[name] = "already completed"
                continue

            self.console.print(Rule(f"[bold blue]Phase {index}/{total}: {title}[/bold blue]"))
            self.logger.info("Starting phase %s", name)
            try:
                entry_point()
            except Exception:
                self.logger.error("Phase %s failed; aborting installation.", name)
                raise

            self.state_service.mark_completed(record, name)
            self.console.print(f"[green]Phase {index}/{total}: {title} completed.[/green]")
            outcome[name] = "completed"

        return outcome
