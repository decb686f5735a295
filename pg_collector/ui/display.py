"""
ResultDisplay - Renders cycle results on the console.

Generates:
- One summary table per round (entities / resets per category)
- Top statements by call delta (verbose)
- JSON lines (--json)
"""

from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich import box

from ..protocol.result import CycleResult
from ..snapshot.models import DiffResult, TransientState

CATEGORY_LABELS = {
    "statement_stats": "Statements",
    "relation_stats": "Tables",
    "index_stats": "Indexes",
    "function_stats": "Functions",
    "system_cpu_stats": "CPU",
    "system_network_stats": "Network",
    "system_disk_stats": "Disks",
}


class ResultDisplay:
    """
    Formats cycle results for output.
    """

    def __init__(self, console: Optional[Console] = None, json_output: bool = False, verbose: bool = False):
        self.console = console or Console()
        self.json_output = json_output
        self.verbose = verbose

    def show(self, results: List[CycleResult]):
        if self.json_output:
            for result in results:
                self.console.print_json(result.to_json())
            return

        self.console.print(self.summary_table(results))
        for result in results:
            if result.error:
                self.console.print(
                    f"[bold red]{result.server_name}[/]: {result.error.phase} failed: {result.error.message}"
                )
            elif self.verbose and result.diff and result.transient:
                self.console.print(self.top_statements(result.server_name, result.diff, result.transient))

    def summary_table(self, results: List[CycleResult]) -> Table:
        """One row per server, one column per category."""
        table = Table(title="Collection Cycle", box=box.SIMPLE_HEAVY)
        table.add_column("Server", style="cyan")
        table.add_column("Status")
        for label in CATEGORY_LABELS.values():
            table.add_column(label, justify="right")
        table.add_column("Time", justify="right", style="dim")

        for result in results:
            if not result.success:
                status = "[red]failed[/]"
            elif result.cold_start:
                status = "[yellow]baseline[/]"
            else:
                status = "[green]ok[/]"

            cells = []
            for name in CATEGORY_LABELS:
                deltas = result.diff.category_maps()[name] if result.diff else {}
                resets = sum(1 for d in deltas.values() if d.reset)
                cell = str(len(deltas))
                if resets:
                    cell += f" [magenta]({resets} reset)[/]"
                cells.append(cell)

            table.add_row(result.server_name, status, *cells, f"{result.duration_ms}ms")

        return table

    def top_statements(self, server_name: str, diff: DiffResult, transient: TransientState, limit: int = 10) -> Table:
        """Statements with the most calls in this interval."""
        table = Table(title=f"Top statements - {server_name}", box=box.SIMPLE)
        table.add_column("Calls", justify="right")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Query", overflow="ellipsis", no_wrap=True, max_width=80)

        ranked = sorted(
            diff.statement_stats.items(),
            key=lambda item: item[1].values.get("calls", 0),
            reverse=True,
        )
        for key, delta in ranked[:limit]:
            statement = transient.statements.get(key)
            query = " ".join(statement.query.split()) if statement else "?"
            table.add_row(
                str(delta.values.get("calls", 0)),
                f"{delta.values.get('total_time', 0.0):.1f}",
                query,
            )
        return table
