#!/usr/bin/env python3
"""Interactive chat CLI for testing the playlist chat service."""

import json
import sys
from collections.abc import Iterator

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt


class ChatCLI:
    """Interactive chat interface that renders the streamed turn as it arrives."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(60.0, read=None))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold magenta]🎵 Moodmix - Interactive Playlist Chat[/bold magenta]\n"
                "Tell the assistant how you feel or what you're doing.\n"
                "Commands: /help, /history, /clear, /quit",
                border_style="magenta",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to playlist chat service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.lower() == "/clear":
                    self.session_id = None
                    self.console.print("[yellow]🔄 Session cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                payload: dict = {"message": user_input}
                if self.session_id:
                    payload["session_id"] = self.session_id
                self._run_stream("/chat", payload)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _run_stream(self, path: str, payload: dict) -> None:
        """Post a request, render its event stream, and handle any approvals it asks for."""
        awaiting: list[dict] = []
        text = ""

        try:
            with self.client.stream("POST", f"{self.base_url}{path}", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return

                self.session_id = response.headers.get("x-session-id", self.session_id)
                for event in self._read_events(response):
                    text = self._render_event(event, text, awaiting)
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if text:
            self._display_text(text)

        for call in awaiting:
            self._ask_confirmation(call)

    def _read_events(self, response: httpx.Response) -> Iterator[dict]:
        for line in response.iter_lines():
            if line.startswith("data: "):
                yield json.loads(line[len("data: ") :])

    def _render_event(self, event: dict, text: str, awaiting: list[dict]) -> str:
        event_type = event.get("type")
        if event_type == "text-delta":
            return text + event["delta"]

        if text:
            self._display_text(text)
            text = ""

        if event_type == "tool-input-available":
            self.console.print(f"[dim]🔧 {event['tool_name']} {json.dumps(event['input'])}[/dim]")
            if event.get("needs_confirmation"):
                awaiting.append(event)
        elif event_type == "tool-output-available":
            self.console.print(f"[dim]✔ {str(event['output'])[:120]}[/dim]")
        elif event_type == "tool-output-error":
            self.console.print(f"[yellow]⚠ {event['error']['kind']}: {event['error']['message']}[/yellow]")
        elif event_type == "error":
            self.console.print(f"[red]❌ {event['error_text']}[/red]")
        elif event_type == "finish" and event["finish_reason"] not in ("stop", "awaiting-confirmation"):
            self.console.print(f"[dim]Turn ended: {event['finish_reason']}[/dim]")
        return text

    def _ask_confirmation(self, call: dict) -> None:
        self.console.print(
            Panel(
                json.dumps(call["input"], indent=2),
                title=f"[yellow]Approve {call['tool_name']}?[/yellow]",
                border_style="yellow",
            )
        )
        decision = "approve" if Confirm.ask("Approve this action?") else "reject"
        self._run_stream(
            f"/chat/{self.session_id}/confirmations",
            {"tool_call_id": call["tool_call_id"], "decision": decision},
        )

    def _display_text(self, text: str) -> None:
        self.console.print(
            Panel(
                Markdown(text),
                title="[bold green]🎧 Moodmix[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_history(self) -> None:
        if not self.session_id:
            self.console.print("[yellow]No session yet[/yellow]")
            return
        response = self.client.get(f"{self.base_url}/chat/{self.session_id}/messages")
        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return
        data = response.json()
        for message in data["messages"]:
            text = "".join(part.get("text", "") for part in message["parts"] if part["type"] == "text")
            tools = [part["tool_name"] for part in message["parts"] if part["type"] == "tool-invocation"]
            suffix = f" [dim](tools: {', '.join(tools)})[/dim]" if tools else ""
            self.console.print(f"[bold]{message['role']}[/bold]: {text[:200]}{suffix}")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /history - Show the conversation so far
• /clear - Clear session and start over
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "I'm feeling really energetic today"
2. "Make me a 10 song workout playlist"
3. "Save that playlist" (you'll be asked to approve)
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
