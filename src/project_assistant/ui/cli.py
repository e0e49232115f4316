"""Typer CLI for the project assistant service.

Serve the HTTP API, or talk to a running instance from the terminal.
"""

from typing import Any, Optional

import httpx
import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from project_assistant.config import settings

app = typer.Typer(help="Project Assistant - AI orchestration service")
console = Console()


def _headers() -> dict[str, str]:
    if settings.service_api_key:
        return {"Authorization": f"Bearer {settings.service_api_key}"}
    return {}


def _request_error_message(error: Exception) -> str:
    """Convert client errors to user-friendly CLI output."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        try:
            body: dict[str, Any] = error.response.json()
            details = str(body.get("detail") or body.get("error") or "")
        except ValueError:
            details = error.response.text[:300]
        retry_after = error.response.headers.get("Retry-After")
        if retry_after:
            details = f"{details} (retry after {retry_after}s)"
        return f"Service request failed ({status}): {details}"
    if isinstance(error, httpx.RequestError):
        return (
            f"Cannot reach the assistant service at {settings.service_url}. "
            "Set ASSISTANT_SERVICE_URL and ensure the service is running."
        )
    return str(error)


def _build_body(message: str, project: str, user: str, role: str, tenant: str) -> dict[str, Any]:
    return {
        "messages": [{"role": "user", "content": message}],
        "caller": {"userId": user, "role": role, "tenantId": tenant, "projectId": project},
    }


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP service."""
    import uvicorn  # noqa: PLC0415

    uvicorn.run(
        "project_assistant.service.app:app",
        host=host or settings.service_host,
        port=port or settings.service_port,
        reload=reload,
        log_config=None,
    )


@app.command()
def ask(
    message: str = typer.Argument(..., help="Question or instruction for the assistant"),
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    user: str = typer.Option(..., "--user", "-u", help="User id"),
    role: str = typer.Option("viewer", "--role", "-r", help="Project role"),
    tenant: str = typer.Option("default", "--tenant", help="Tenant id"),
    stream: bool = typer.Option(False, "--stream", help="Use the streaming endpoint"),
) -> None:
    """Send one chat turn to the service.

    Examples:
        project-assistant ask "Submit my timesheets" -p P1 -u U1 -r contributor
        project-assistant ask "How are we doing on budget?" -p P1 -u U1 --stream
    """
    body = _build_body(message, project, user, role, tenant)
    try:
        with httpx.Client(timeout=120.0, headers=_headers()) as client:
            if stream:
                with client.stream("POST", f"{settings.service_url}/chat/stream", json=body) as response:
                    response.raise_for_status()
                    for chunk in response.iter_text():
                        console.print(chunk, end="", markup=False, highlight=False)
                    console.print()
                    console.print(f"[dim]path: {response.headers.get('X-Path-Taken', '?')}[/dim]")
                return

            response = client.post(f"{settings.service_url}/chat", json=body)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
    except (httpx.HTTPStatusError, httpx.RequestError) as error:
        console.print(f"[red]{_request_error_message(error)}[/red]")
        raise typer.Exit(1) from error

    console.print(Markdown(str(data.get("text", ""))))

    for pending in data.get("pendingActions", []):
        console.print(
            f"\n[yellow]Awaiting confirmation:[/yellow] {pending.get('preview', '')} "
            f"[dim]({pending.get('actionName')})[/dim]"
        )

    usage = data.get("usage", {})
    tools = ", ".join(data.get("toolsCalled", [])) or "none"
    console.print(
        f"\n[dim]path: {data.get('pathTaken')} | tools: {tools} | "
        f"tokens: {usage.get('inputTokens', 0)}/{usage.get('outputTokens', 0)} | "
        f"cost: ${usage.get('costUsd', 0.0):.5f} | trace: {data.get('traceId')}[/dim]"
    )


@app.command()
def tools() -> None:
    """List the tools the running service exposes."""
    try:
        response = httpx.get(f"{settings.service_url}/tools", timeout=30.0)
        response.raise_for_status()
    except (httpx.HTTPStatusError, httpx.RequestError) as error:
        console.print(f"[red]{_request_error_message(error)}[/red]")
        raise typer.Exit(1) from error

    data: dict[str, Any] = response.json()
    table = Table(title=f"Tools ({data.get('count', 0)})")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Capability", style="dim")
    table.add_column("Description")
    for tool in data.get("tools", []):
        kind = "action" if tool.get("mutating") else ("read, cached" if tool.get("cacheable") else "read")
        table.add_row(
            tool.get("name", ""),
            kind,
            tool.get("requiredCapability") or "-",
            tool.get("description", ""),
        )
    console.print(table)


@app.command()
def usage() -> None:
    """Show model usage and cost since the service started."""
    try:
        response = httpx.get(f"{settings.service_url}/usage", headers=_headers(), timeout=30.0)
        response.raise_for_status()
    except (httpx.HTTPStatusError, httpx.RequestError) as error:
        console.print(f"[red]{_request_error_message(error)}[/red]")
        raise typer.Exit(1) from error

    data: dict[str, Any] = response.json()
    table = Table(title=f"Usage since {data.get('since', '?')}")
    table.add_column("Tier", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Input tokens", justify="right")
    table.add_column("Output tokens", justify="right")
    table.add_column("Cost (USD)", justify="right", style="green")
    for tier, stats in data.get("byTier", {}).items():
        table.add_row(
            tier,
            str(stats.get("modelCalls", 0)),
            str(stats.get("inputTokens", 0)),
            str(stats.get("outputTokens", 0)),
            f"{stats.get('costUsd', 0.0):.5f}",
        )
    table.add_row(
        "[bold]total[/bold]",
        str(data.get("modelCalls", 0)),
        str(data.get("inputTokens", 0)),
        str(data.get("outputTokens", 0)),
        f"[bold]{data.get('costUsd', 0.0):.5f}[/bold]",
    )
    console.print(table)

    turns = data.get("turnsByPath", {})
    if turns:
        console.print("[dim]turns: " + ", ".join(f"{k}={v}" for k, v in turns.items()) + "[/dim]")


if __name__ == "__main__":
    app()
