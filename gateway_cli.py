"""
A small CLI for talking to the session gateway over its JSON-RPC endpoint.
"""
import itertools
import json
from typing import Any, Dict, Iterator, List, Optional

import requests
import typer
from prompt_toolkit import prompt as ptk_prompt
from prompt_toolkit.formatted_text import FormattedText
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

# --- Configuration ---
API_URL = "http://127.0.0.1:3001/mcp"
SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_VERSION = "2025-03-26"


# --- Rich Console Initialization ---
console = Console()
app = typer.Typer(
    name="gateway-cli",
    help="A CLI for interacting with the session gateway.",
    add_completion=False,
)

_ids = itertools.count(1)

UrlOption = typer.Option(API_URL, "--url", "-u", help="Gateway endpoint.")
SessionOption = typer.Option(
    ..., "--session", "-s", envvar="GATEWAY_SESSION_ID", help="Session id returned by `init`."
)


# --- API Interaction Functions ---

def _headers(session_id: Optional[str]) -> Dict[str, str]:
    headers = {"Accept": "application/json, text/event-stream"}
    if session_id:
        headers[SESSION_HEADER] = session_id
    return headers


def iter_messages(response: requests.Response) -> Iterator[Dict[str, Any]]:
    """Yield JSON-RPC messages from a JSON or an SSE response."""
    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("text/event-stream"):
        yield response.json()
        return
    for line in response.iter_lines(decode_unicode=True):
        if not line or not line.startswith("data:"):
            continue
        try:
            yield json.loads(line[len("data:"):].strip())
        except json.JSONDecodeError:
            console.print(f"[red]Skipping malformed frame: {line}[/red]")


def rpc(url: str, method: str, params: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None,
        stream: bool = False) -> requests.Response:
    body = {"jsonrpc": "2.0", "id": next(_ids), "method": method, "params": params or {}}
    return requests.post(url, json=body, headers=_headers(session_id), stream=stream)


def _fail(message: str, detail: Any = None):
    console.print(f"[bold red]Error:[/bold red] {message}")
    if detail is not None:
        console.print(f"Details: {detail}")
    raise typer.Exit(1)


def _single(response: requests.Response) -> Dict[str, Any]:
    """Return the result of a single-shot reply, exiting on an error envelope."""
    message = next(iter_messages(response), None)
    if message is None:
        _fail("Empty response from the gateway.")
    if "error" in message:
        error = message["error"]
        _fail(f"{error.get('message')} (code {error.get('code')})")
    return message.get("result", {})


def initialize(url: str) -> str:
    """Creates a new session and returns its ID."""
    try:
        response = rpc(
            url,
            "initialize",
            {"protocolVersion": PROTOCOL_VERSION, "clientInfo": {"name": "gateway-cli", "version": "0.1.0"}},
        )
    except requests.RequestException as e:
        _fail(f"Could not connect to the gateway at {url}.", e)
    result = _single(response)
    session_id = response.headers.get(SESSION_HEADER)
    if not session_id:
        _fail("The gateway did not return a session id.")
    rpc(url, "notifications/initialized", session_id=session_id)
    server = result.get("serverInfo", {})
    console.print(
        f"✅ Session [yellow]{session_id}[/yellow] on {server.get('name')} {server.get('version')} "
        f"(protocol {result.get('protocolVersion')})"
    )
    return session_id


def result_text(result: Dict[str, Any]) -> str:
    return "".join(part.get("text", "") for part in result.get("content", []) if part.get("type") == "text")


def parse_args(pairs: List[str]) -> Dict[str, Any]:
    """key=value pairs; values are read as JSON when they parse, strings otherwise."""
    arguments: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            _fail(f"Argument '{pair}' is not in key=value form.")
        try:
            arguments[key] = json.loads(raw)
        except json.JSONDecodeError:
            arguments[key] = raw
    return arguments


def stream_tool(url: str, session_id: str, name: str, arguments: Dict[str, Any]) -> Optional[str]:
    """Call a tool and render each snapshot in place. Returns the final text."""
    latest: Optional[str] = None
    with rpc(url, "tools/call", {"name": name, "arguments": arguments}, session_id, stream=True) as response:
        with Live(Spinner("dots", text="[dim]Waiting for response...[/dim]"), console=console,
                  refresh_per_second=10) as live:
            for message in iter_messages(response):
                if "error" in message:
                    live.stop()
                    error = message["error"]
                    console.print(Panel(f"{error.get('message')} (code {error.get('code')})",
                                        title="Error", border_style="bold red"))
                    return None
                result = message.get("result", {})
                latest = result_text(result)
                style = "red" if result.get("isError") else "green"
                live.update(Text(latest, style=style))
    return latest


# --- Commands ---

@app.command()
def init(url: str = UrlOption):
    """Open a new session and print its id."""
    session_id = initialize(url)
    console.print(f"export GATEWAY_SESSION_ID={session_id}")


@app.command()
def tools(session_id: str = SessionOption, url: str = UrlOption):
    """List the tools the gateway exposes."""
    result = _single(rpc(url, "tools/list", session_id=session_id))
    table = Table(title="Tools", border_style="blue")
    table.add_column("Name", style="bold cyan")
    table.add_column("Description")
    table.add_column("Arguments", style="dim")
    for tool in result.get("tools", []):
        properties = tool.get("inputSchema", {}).get("properties", {})
        table.add_row(tool.get("name"), tool.get("description", ""), ", ".join(properties))
    console.print(table)


@app.command()
def call(
    name: str = typer.Argument(..., help="Tool name."),
    arg: List[str] = typer.Option([], "--arg", "-a", help="Tool argument as key=value (repeatable)."),
    session_id: str = SessionOption,
    url: str = UrlOption,
):
    """Call a tool and print its result."""
    result = _single(rpc(url, "tools/call", {"name": name, "arguments": parse_args(arg)}, session_id))
    style = "red" if result.get("isError") else "green"
    console.print(Panel(Text(result_text(result), style=style), title=f"Tool Output ({name})",
                        title_align="left", border_style="yellow"))


@app.command()
def stream(
    name: str = typer.Argument(..., help="Tool name."),
    arg: List[str] = typer.Option([], "--arg", "-a", help="Tool argument as key=value (repeatable)."),
    session_id: str = SessionOption,
    url: str = UrlOption,
):
    """Call a streamed tool and render its snapshots as they arrive."""
    try:
        stream_tool(url, session_id, name, parse_args(arg))
    except requests.RequestException as e:
        _fail("Could not get response from the gateway.", e)


@app.command()
def terminate(session_id: str = SessionOption, url: str = UrlOption):
    """Terminate a session."""
    try:
        response = requests.delete(url, headers=_headers(session_id))
    except requests.RequestException as e:
        _fail(f"Could not connect to the gateway at {url}.", e)
    if response.status_code != 200:
        error = response.json().get("error", {})
        _fail(f"{error.get('message')} (code {error.get('code')})")
    console.print(f"✅ Session [yellow]{session_id}[/yellow] terminated.")


@app.command()
def chat(
    url: str = UrlOption,
    tool: str = typer.Option("stream_chat", "--tool", "-t", help="Streamed tool that takes a prompt."),
):
    """Interactive chat over a fresh session; the session is terminated on exit."""
    console.print(Panel.fit(
        "[bold blue]Session gateway chat[/bold blue]\n"
        "Type [bold cyan]\\exit[/bold cyan] or [bold cyan]\\quit[/bold cyan] to end",
        style="bold blue",
    ))
    session_id = initialize(url)
    try:
        while True:
            prompt_message = [('bold cyan', 'You '), ('', '(Alt+Enter for newline)\n')]
            try:
                user_prompt = ptk_prompt(FormattedText(prompt_message), multiline=True)
            except (EOFError, KeyboardInterrupt):
                break
            if user_prompt.strip().lower() in ["\\exit", "\\quit"]:
                break
            if not user_prompt.strip():
                continue
            try:
                stream_tool(url, session_id, tool, {"prompt": user_prompt})
            except requests.RequestException as e:
                console.print(f"\n[bold red]Error:[/bold red] Could not get response from the gateway. {e}")
            finally:
                console.rule()
    finally:
        try:
            requests.delete(url, headers=_headers(session_id))
        except requests.RequestException as e:
            console.print(f"[yellow]Could not terminate session {session_id}: {e}[/yellow]")
        console.print("👋 Goodbye!")


if __name__ == "__main__":
    app()
