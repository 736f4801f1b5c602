"""Stats command showing pattern store statistics."""

import asyncio
import logging
from typing import Any, Dict

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from context_server.config import ServerConfig
from context_server.store import PatternStore

logger = logging.getLogger(__name__)


class StatsCommand:
    """Print totals plus per-framework and per-category pattern counts."""

    def __init__(self, config: ServerConfig, console: Console = None):
        self.config = config
        self.console = console or Console()

    async def load_store(self) -> PatternStore:
        store = PatternStore(self.config.patterns_path_expanded)
        await asyncio.to_thread(store.load)
        return store

    def build_summary(self, stats: Dict[str, Any], store: PatternStore) -> Table:
        table = Table(title="Patterns by Framework")
        table.add_column("Framework", style="cyan")
        table.add_column("Patterns", justify="right")
        table.add_column("Categories")

        by_framework = store.framework_index()
        patterns = store.get_all_patterns()
        for framework in stats["frameworks"]:
            positions = sorted(by_framework.get(framework, ()))
            categories = sorted({patterns[p].category for p in positions})
            table.add_row(framework, str(len(positions)), ", ".join(categories))

        return table

    async def run(self, args) -> None:
        store = await self.load_store()
        stats = store.get_statistics()

        self.console.print(
            Panel(
                f"[bold]Total patterns:[/bold] {stats['total_patterns']}\n"
                f"[bold]Total usage:[/bold] {stats['total_usage']}\n"
                f"[bold]Average relevance:[/bold] {stats['average_relevance']:.2f}\n"
                f"[bold]Storage:[/bold] {store.storage_path}",
                title="Pattern Store",
            )
        )

        if stats["total_patterns"] == 0:
            self.console.print("[yellow]No patterns stored.[/yellow]")
            return

        self.console.print(self.build_summary(stats, store))
