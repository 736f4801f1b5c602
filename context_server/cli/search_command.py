"""Search command printing ranked patterns."""

import asyncio
import logging

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from context_server.config import ServerConfig
from context_server.core.models import SearchCriteria
from context_server.store import PatternStore

logger = logging.getLogger(__name__)


class SearchCommand:
    """Run a scored pattern search from the command line."""

    def __init__(self, config: ServerConfig, console: Console = None):
        self.config = config
        self.console = console or Console()

    async def run(self, args) -> int:
        """Returns the process exit code."""
        try:
            criteria = SearchCriteria(
                query=args.query,
                framework=args.framework,
                category=args.category,
                tags=args.tags,
                min_score=args.min_score,
            )
        except PydanticValidationError as e:
            self.console.print(f"[red]Invalid search criteria:[/red] {escape(str(e))}")
            return 2

        store = PatternStore(self.config.patterns_path_expanded)
        await asyncio.to_thread(store.load)
        results = store.search_patterns(criteria)

        if not results:
            self.console.print("[yellow]No patterns matched.[/yellow]")
            return 0

        table = Table(title=f"Pattern Search ({len(results)} results)")
        table.add_column("Score", justify="right", style="green")
        table.add_column("ID", style="cyan")
        table.add_column("Framework")
        table.add_column("Category")
        table.add_column("Title")
        table.add_column("Usage", justify="right")

        for pattern, score in results[: args.limit]:
            table.add_row(
                f"{score:.2f}",
                pattern.id,
                pattern.framework,
                pattern.category,
                pattern.title,
                str(pattern.usage_count),
            )

        self.console.print(table)
        if len(results) > args.limit:
            self.console.print(f"[dim]... {len(results) - args.limit} more not shown[/dim]")
        return 0
