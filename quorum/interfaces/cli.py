"""
Quorum CLI - Command Line Interface

Run a model through its pipeline, inspect the catalog, or start the server.

Usage:
    quorum models
    quorum run llama-8b "Summarize the release notes"
    quorum run qwq-32b-preview "How should we shard the index?" --timeout 60
    quorum run bge-large-en "vector search" --operation search --mock
    quorum serve --port 8000
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..adapters.factory import ModelRegistry
from ..foundation.backend import BackendConfig, HttpInferenceBackend, InferenceBackend, MockBackend
from ..foundation.errors import CancellationError, QuorumError, error_from
from ..foundation.models import Request, Response


class QuorumCLI:
    """
    Command-line front end for the model registry.

    Provides:
    - Catalog listing
    - Single request execution with a rendered result
    """

    def __init__(self, backend: Optional[InferenceBackend] = None, console: Optional[Console] = None):
        self.backend = backend if backend is not None else HttpInferenceBackend(BackendConfig.from_env())
        self.registry = ModelRegistry(self.backend)
        self.console = console or Console()

    def print_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")

    def show_models(self) -> None:
        """Print the model catalog"""
        table = Table(title="Models")
        table.add_column("Model", style="cyan")
        table.add_column("Kind")
        table.add_column("Backend name", style="dim")
        table.add_column("Max tokens", justify="right")
        table.add_column("Latency target", justify="right")

        for config in self.registry.list_models():
            table.add_row(
                config.model_id,
                config.kind.value,
                config.model_name,
                str(config.max_tokens),
                f"{config.optimal_latency_ms:.0f}ms",
            )
        self.console.print(table)

    def run(
        self,
        model_id: str,
        text: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        as_json: bool = False,
    ) -> int:
        """
        Execute one request and render the response.

        Returns:
            Exit code: 0 success, 1 degraded or unknown model, 2 deadline expired
        """
        pipeline = self.registry.get(model_id)
        if pipeline.is_none():
            self.print_error(f"Unknown model: {model_id}")
            return 1

        request = Request(text=text, context=context or {}, operation=operation)

        try:
            response = asyncio.run(self._execute(pipeline.unwrap(), request, timeout))
        except CancellationError as e:
            self.print_error(str(e))
            return 2

        if as_json:
            self.console.print_json(json.dumps(response.to_dict(), default=str))
            return 1 if response.is_degraded else 0

        try:
            response.raise_for_error()
        except QuorumError as e:
            self.render_failure(response.model_id, e)
            return 1

        self.render(response)
        return 0

    async def _execute(self, pipeline, request: Request, timeout: Optional[float]) -> Response:
        try:
            return await pipeline.execute(request, timeout=timeout)
        finally:
            await self.registry.close()

    def render_failure(self, model_id: str, error: QuorumError) -> None:
        """Print the failure and its root cause"""
        root = error_from(error.error.root)
        body = escape(str(error))
        if root.error is not error.error:
            body += f"\n\n[dim]root cause: {type(root).__name__}: {escape(str(root))}[/dim]"

        self.console.print(Panel(
            body,
            title=f"[red]{model_id} degraded: {type(error).__name__}[/red]",
        ))

    def render(self, response: Response) -> None:
        """Print a successful response as panels"""
        metadata = response.metadata

        if response.text:
            self.console.print(Panel(response.text, title=response.model_id))

        steps: List[str] = metadata.get("reasoning_steps") or []
        if steps:
            body = "\n".join(f"{i}. {step}" for i, step in enumerate(steps, 1))
            self.console.print(Panel(body, title=f"Reasoning ({metadata.get('strategy')})"))

        if response.search_results is not None:
            table = Table(title="Search results")
            table.add_column("Score", justify="right")
            table.add_column("Text")
            for hit in response.search_results:
                table.add_row(f"{hit.score:.3f}", hit.text)
            self.console.print(table)
        elif response.embeddings:
            self.console.print(
                f"[dim]{len(response.embeddings)} embedding(s), "
                f"{len(response.embeddings[0])} dimensions[/dim]"
            )

        self.console.print(
            f"[dim]confidence {response.confidence:.2f} | "
            f"{response.processing_time_ms:.0f}ms | "
            f"{response.token_count} tokens | "
            f"cache {'hit' if metadata.get('cache_hit') else 'miss'}[/dim]"
        )


def _parse_context(pairs: List[str]) -> Dict[str, Any]:
    context: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}")
        context[key.strip()] = value.strip()
    return context


app = typer.Typer(
    name="quorum",
    help="Quorum - resilient model execution and multi-path reasoning",
    no_args_is_help=True,
)


@app.command()
def models():
    """List the model catalog"""
    QuorumCLI(backend=MockBackend()).show_models()


@app.command()
def run(
    model: str = typer.Argument(..., help="Model id, e.g. llama-8b"),
    text: str = typer.Argument(..., help="Request text"),
    operation: Optional[str] = typer.Option(None, "--operation", "-o", help="embed, store or search"),
    context: Optional[List[str]] = typer.Option(None, "--context", "-c", help="key=value, repeatable"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Deadline in seconds"),
    mock: bool = typer.Option(False, "--mock", help="Use the scripted mock backend"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response"),
):
    """Run one request through a model's pipeline"""
    cli = QuorumCLI(backend=MockBackend() if mock else None)
    code = cli.run(
        model,
        text,
        operation=operation,
        context=_parse_context(context or []),
        timeout=timeout,
        as_json=as_json,
    )
    raise typer.Exit(code)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    dev: bool = typer.Option(False, "--dev", help="Development configuration"),
):
    """Start the HTTP server"""
    from ..server import QuorumServer, ServerConfig, configure_logging

    config = ServerConfig.development() if dev else ServerConfig.from_env()
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port

    configure_logging(config)
    QuorumServer(config).run()


def run_cli():
    """Entry point for CLI"""
    app()


if __name__ == "__main__":
    run_cli()
