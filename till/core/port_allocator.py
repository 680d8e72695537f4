"""Port range conflict detection and relocation."""

from typing import Optional, Protocol

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .models import ConflictChoice, PortConflict, validate_port
from .port_probe import PortProbe
from .process_controller import ProcessController
from ..config import MANUAL_PORT_MAX, MANUAL_PORT_MIN, MAX_PORT, get_settings
from ..utils.logging_config import get_logger, timed

logger = get_logger('port_allocator')

# Probing a full block shells out once per port
SLOW_RANGE_MS = 5000


class ConflictResolver(Protocol):
    """How an interactive allocation talks to the user."""

    def show_conflicts(self, conflicts: list[PortConflict], limit: int) -> None: ...

    def choose(self) -> ConflictChoice: ...

    def confirm_suggestion(self, main_base: int, ai_base: int) -> bool: ...

    def ask_ports(self, main_base: int, ai_base: int) -> tuple[int, int]: ...

    def warn(self, message: str) -> None: ...


class ConsoleResolver:
    """Terminal prompts for resolving conflicts."""

    CHOICES = {
        "1": ConflictChoice.KILL,
        "2": ConflictChoice.SUGGEST,
        "3": ConflictChoice.MANUAL,
        "4": ConflictChoice.ABORT,
    }

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_conflicts(self, conflicts: list[PortConflict], limit: int) -> None:
        table = Table(title=f"Port conflicts ({len(conflicts)})")
        table.add_column("Port", justify="right")
        table.add_column("PID", justify="right")
        table.add_column("Process")
        for conflict in conflicts[:limit]:
            table.add_row(str(conflict.port), str(conflict.pid), conflict.owner.display_name)
        self.console.print(table)
        if len(conflicts) > limit:
            self.console.print(f"[dim]... and {len(conflicts) - limit} more[/dim]")

    def choose(self) -> ConflictChoice:
        self.console.print("\nHow should these conflicts be resolved?")
        self.console.print("  1. Stop the processes using these ports")
        self.console.print("  2. Use the next free port ranges")
        self.console.print("  3. Enter different base ports")
        self.console.print("  4. Abort")
        choice = Prompt.ask("Choice", choices=list(self.CHOICES), default="2",
                            console=self.console)
        return self.CHOICES[choice]

    def confirm_suggestion(self, main_base: int, ai_base: int) -> bool:
        return Confirm.ask(f"Use main base {main_base} and AI base {ai_base}?",
                           default=True, console=self.console)

    def ask_ports(self, main_base: int, ai_base: int) -> tuple[int, int]:
        new_main = IntPrompt.ask(f"Main base port ({MANUAL_PORT_MIN}-{MANUAL_PORT_MAX})",
                                 default=main_base, console=self.console)
        new_ai = IntPrompt.ask(f"AI base port ({MANUAL_PORT_MIN}-{MANUAL_PORT_MAX})",
                               default=ai_base, console=self.console)
        return new_main, new_ai

    def warn(self, message: str) -> None:
        self.console.print(f"[yellow]Warning:[/yellow] {message}")


class PortRangeAllocator:
    """
    Finds port blocks with no listening processes.

    A range reported clear was clear when probed. Nothing is reserved, so
    another process may still bind those ports before the caller does.
    """

    def __init__(self, probe: Optional[PortProbe] = None,
                 controller: Optional[ProcessController] = None,
                 resolver: Optional[ConflictResolver] = None):
        self.probe = probe or PortProbe()
        self.controller = controller or ProcessController()
        self.resolver = resolver
        logger.debug("PortRangeAllocator initialized")

    @timed(threshold_ms=SLOW_RANGE_MS)
    def check_range(self, base: int, size: int) -> list[PortConflict]:
        """
        Probe every port in [base, base+size-1].

        Returns:
            Occupied ports with their owners, ascending. Empty means clear.
        """
        self._check_bounds(base, size)
        conflicts: list[PortConflict] = []
        for port in range(base, base + size):
            owner = self.probe.find_owner(port)
            if owner is not None:
                conflicts.append(PortConflict(port=port, owner=owner))
        logger.debug(f"Range {base}-{base + size - 1}: {len(conflicts)} conflicts")
        return conflicts

    @timed(threshold_ms=SLOW_RANGE_MS)
    def find_free_range(self, start: int, size: int,
                        max_attempts: Optional[int] = None) -> Optional[int]:
        """
        Search start, start+size, start+2*size, ... for a clear block.

        Returns:
            First clear base port, or None after max_attempts blocks or when
            the next block would pass port 65535.
        """
        if max_attempts is None:
            max_attempts = get_settings().max_range_attempts
        self._check_bounds(start, size)

        for attempt in range(max_attempts):
            base = start + attempt * size
            if base + size - 1 > MAX_PORT:
                break
            if not self.check_range(base, size):
                logger.info(f"Found free range at {base} (attempt {attempt + 1})")
                return base

        logger.warning(f"No free {size}-port range found from {start} in {max_attempts} attempts")
        return None

    def allocate(self, main_base: Optional[int] = None, ai_base: Optional[int] = None,
                 size: Optional[int] = None, interactive: bool = False) -> Optional[tuple[int, int]]:
        """
        Validate a main/AI range pair and relocate it if ports are taken.

        Args:
            main_base: Desired base of the main range (default from settings).
            ai_base: Desired base of the AI range (default from settings).
            size: Ports per range (default from settings).
            interactive: Ask the resolver how to handle conflicts.

        Returns:
            (main_base, ai_base) to use, or None on failure or abort.
        """
        settings = get_settings()
        main_base = settings.port_base if main_base is None else main_base
        ai_base = settings.ai_port_base if ai_base is None else ai_base
        size = settings.range_size if size is None else size

        conflicts = self.check_range(main_base, size) + self.check_range(ai_base, size)
        if not conflicts:
            logger.info(f"Port ranges {main_base} and {ai_base} are clear")
            return main_base, ai_base

        logger.warning(f"{len(conflicts)} port conflicts in ranges {main_base} and {ai_base}")
        if not interactive:
            return self._suggest(main_base, ai_base, size)

        resolver = self.resolver or ConsoleResolver()
        resolver.show_conflicts(conflicts, get_settings().conflict_display_limit)
        choice = resolver.choose()
        logger.info(f"Conflict resolution chosen: {choice.value}")

        if choice == ConflictChoice.KILL:
            return self._kill_owners(conflicts, main_base, ai_base, size, resolver)
        if choice == ConflictChoice.SUGGEST:
            suggestion = self._suggest(main_base, ai_base, size)
            if suggestion is None:
                resolver.warn("No free port ranges found")
                return None
            if resolver.confirm_suggestion(*suggestion):
                return suggestion
            logger.info("Suggested port ranges rejected")
            return None
        if choice == ConflictChoice.MANUAL:
            return self._manual(main_base, ai_base, size, resolver)

        logger.info("Port allocation aborted")
        return None

    def _suggest(self, main_base: int, ai_base: int, size: int) -> Optional[tuple[int, int]]:
        new_main = self.find_free_range(main_base, size)
        if new_main is None:
            return None
        new_ai = self.find_free_range(ai_base, size)
        if new_ai is None:
            return None
        return new_main, new_ai

    def _kill_owners(self, conflicts: list[PortConflict], main_base: int, ai_base: int,
                     size: int, resolver: ConflictResolver) -> tuple[int, int]:
        pids = list(dict.fromkeys(c.pid for c in conflicts))
        timeout_ms = get_settings().kill_timeout_ms
        for pid in pids:
            if not self.controller.terminate(pid, timeout_ms):
                resolver.warn(f"Could not stop process {pid}")

        self._warn_residual(main_base, ai_base, size, resolver)
        return main_base, ai_base

    def _manual(self, main_base: int, ai_base: int, size: int,
                resolver: ConflictResolver) -> Optional[tuple[int, int]]:
        new_main, new_ai = resolver.ask_ports(main_base, ai_base)
        for port in (new_main, new_ai):
            if not MANUAL_PORT_MIN <= port <= MANUAL_PORT_MAX:
                resolver.warn(f"Port {port} must be between {MANUAL_PORT_MIN} and {MANUAL_PORT_MAX}")
                logger.error(f"Rejected manual base port {port}")
                return None

        self._warn_residual(new_main, new_ai, size, resolver)
        return new_main, new_ai

    def _warn_residual(self, main_base: int, ai_base: int, size: int,
                       resolver: ConflictResolver):
        remaining = self.check_range(main_base, size) + self.check_range(ai_base, size)
        if remaining:
            ports = ", ".join(str(c.port) for c in remaining)
            resolver.warn(f"{len(remaining)} ports still in use: {ports}")
            logger.warning(f"Proceeding with ports still in use: {ports}")

    @staticmethod
    def _check_bounds(base: int, size: int):
        if size < 1:
            raise ValueError(f"Range size must be positive, got {size}")
        validate_port(base)
        validate_port(base + size - 1)
