"""Console interface for ``gastobot``.

Typer application exposing the chat pipeline to a terminal: an interactive
chat, a one-shot ``say``, ledger ``sync``, a ``dashboard`` summary,
``delete`` by id, the Telegram ``bridge`` loop and ``configure`` for persisted
settings. The root callback loads ``.env`` from the working directory
(without overriding set variables) and configures logging before any command
runs.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .categories import category_color
from .config import Settings
from .errors import LedgerError
from .formatting import format_money, format_short_date
from .logging_setup import configure_logging
from .session import ChatSession
from .store import JsonStateFile

app = typer.Typer(
    name="gastobot",
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Anotá gastos conversando. Usa OpenAI para interpretar los mensajes y, "
        "si está configurada, sincroniza con una planilla."
    ),
)
console = Console()


# ---- Small module-level helpers ----------------------------------------------


def _load() -> tuple[Settings, JsonStateFile]:
    """Resolve settings against the persisted state; exit 1 on bad config."""

    try:
        bootstrap = Settings.resolve()
        storage = JsonStateFile(bootstrap.state_file)
        return Settings.resolve(storage.load()), storage
    except ValueError as e:
        console.print(f"[red]Error de configuración:[/red] {e}")
        raise typer.Exit(1) from e


def _build_session() -> tuple[Settings, ChatSession]:
    settings, storage = _load()
    return settings, ChatSession.from_settings(settings, storage=storage)


def _print_bot(text: str) -> None:
    console.print(Panel(Markdown(text), title="GastoBot", title_align="left", border_style="green"))


# ---- Commands ----------------------------------------------------------------


@app.command()
def chat() -> None:
    """Interactive chat. Escribí /salir (o Ctrl-D) para terminar."""

    from .term_ui import HELP_COMMAND, make_prompt_session, read_utterance

    settings, session = _build_session()
    mode = "planilla conectada" if settings.ledger_url else "modo local (sin respaldo)"
    console.print(f"[dim]{mode} · {len(session.store)} gastos cargados[/dim]")
    _print_bot(session.transcript.messages()[0].text)

    prompt = make_prompt_session()
    while True:
        text = read_utterance(session=prompt)
        if text is None:
            break
        if not text:
            continue
        if text.lower() == HELP_COMMAND:
            _print_bot('Probá con "Gasté 2500 en el súper", "¿Cuánto gasté esta semana?" o "Borrá el taxi".')
            continue
        if text.lower() == "/gastos":
            _render_dashboard(session)
            continue
        with console.status("Analizando con IA..."):
            reply = session.handle_utterance(text)
        if reply is not None:
            _print_bot(reply.text)


@app.command()
def say(
    text: Annotated[str, typer.Argument(help="Mensaje a procesar")],
) -> None:
    """Procesa un único mensaje e imprime la respuesta."""

    _settings, session = _build_session()
    reply = session.handle_utterance(text)
    if reply is None:
        console.print("[yellow]Mensaje vacío.[/yellow]")
        raise typer.Exit(1)
    _print_bot(reply.text)


@app.command()
def sync() -> None:
    """Reemplaza los gastos locales por los de la planilla."""

    settings, session = _build_session()
    if not settings.ledger_url:
        console.print("[red]Error:[/red] no hay planilla configurada (gastobot configure --ledger-url ...).")
        raise typer.Exit(1)
    try:
        count = session.sync_from_ledger()
    except LedgerError as e:
        console.print(f"[red]Error al leer la planilla:[/red] {e}")
        raise typer.Exit(1) from e
    console.print(f"[green]Sincronizado:[/green] {count} gastos.")


def _render_dashboard(session: ChatSession) -> None:
    from .dashboard import summarize

    session.refresh()
    summary = summarize(session.store.all(), date.today())
    console.print(
        f"Total: [bold]${format_money(summary.total)}[/bold] · "
        f"Hoy: [bold]${format_money(summary.today_total)}[/bold] · "
        f"{summary.count} gastos"
    )
    if not summary.by_category:
        return
    table = Table(title="Por categoría")
    table.add_column("Categoría")
    table.add_column("Monto", justify="right")
    for category, amount in summary.by_category:
        table.add_row(
            f"[{category_color(category)}]●[/] {category}", f"${format_money(amount)}"
        )
    console.print(table)

    movements = Table(title="Movimientos")
    movements.add_column("Fecha")
    movements.add_column("Descripción")
    movements.add_column("Categoría")
    movements.add_column("Monto", justify="right")
    movements.add_column("ID", style="dim", overflow="fold")
    for e in summary.expenses:
        movements.add_row(
            format_short_date(e.expense_date),
            e.description,
            f"[{category_color(e.category)}]●[/] {e.category}",
            f"-${format_money(e.amount)}",
            e.id,
        )
    console.print(movements)
    console.print("[dim]Para borrar: gastobot delete <ID>[/dim]")


@app.command()
def dashboard() -> None:
    """Totales, gasto por categoría y lista de movimientos."""

    _settings, session = _build_session()
    _render_dashboard(session)


@app.command()
def delete(
    expense_id: Annotated[str, typer.Argument(help="ID del gasto (ver gastobot dashboard)")],
) -> None:
    """Borra un gasto por ID; con planilla, solo si la planilla lo confirma."""

    _settings, session = _build_session()
    outcome = session.delete_by_id(expense_id.strip())
    _print_bot(outcome.response_text)
    if not outcome.expenses_to_remove:
        raise typer.Exit(1)


@app.command()
def configure(
    name: Annotated[str | None, typer.Option(help="Tu nombre para el bot")] = None,
    ledger_url: Annotated[
        str | None, typer.Option(help="URL del despliegue web de la planilla")
    ] = None,
    clear_ledger: Annotated[
        bool, typer.Option("--clear-ledger", help="Quita la planilla configurada")
    ] = False,
    bridge: Annotated[
        bool | None, typer.Option("--bridge/--no-bridge", help="Activa la sincronización con Telegram")
    ] = None,
) -> None:
    """Guarda la configuración en el archivo de estado."""

    _settings, storage = _load()
    changes: dict[str, object] = {}
    if name is not None:
        changes["user_name"] = name.strip()
    if clear_ledger:
        changes["ledger_url"] = None
    elif ledger_url is not None:
        changes["ledger_url"] = ledger_url.strip()
    if bridge is not None:
        changes["bridge_enabled"] = bridge
    if not changes:
        console.print("[yellow]Nada para cambiar.[/yellow] Usá --help para ver las opciones.")
        raise typer.Exit(1)
    state = storage.update(**changes)
    resolved = Settings.resolve(state)
    console.print(
        f"Usuario: [bold]{resolved.user_name}[/bold] · "
        f"Planilla: {resolved.ledger_url or '—'} · "
        f"Telegram: {'ON' if resolved.bridge_enabled else 'OFF'}"
    )


@app.command()
def bridge() -> None:
    """Atiende mensajes de Telegram hasta Ctrl-C o hasta que se desactive."""

    from .telegram import BridgeLoop, TelegramClient, stop_on_interrupt

    settings, storage = _load()
    if not settings.telegram_token:
        console.print("[red]Error:[/red] falta TELEGRAM_BOT_TOKEN en el entorno.")
        raise typer.Exit(1)
    if not settings.bridge_ready:
        console.print(
            "[red]Error:[/red] activá el puente (gastobot configure --bridge) "
            "y configurá la planilla primero."
        )
        raise typer.Exit(1)

    session = ChatSession.from_settings(settings, storage=storage)

    def _handle(text: str, first_name: str | None) -> str:
        reply = session.handle_utterance(text, user_name=first_name or settings.user_name)
        return reply.text if reply is not None else ""

    def _still_enabled() -> bool:
        try:
            return Settings.resolve(storage.load()).bridge_ready
        except ValueError:
            return False

    loop = BridgeLoop(
        TelegramClient(settings.telegram_token),
        _handle,
        storage,
        poll_delay=settings.poll_delay_sec,
        should_run=_still_enabled,
    )
    console.print("[green]Puente de Telegram activo.[/green] Ctrl-C para detener.")
    with stop_on_interrupt(loop):
        loop.run()
    console.print(f"Puente detenido (último update: {loop.last_update_id}).")


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - `python -m gastobot.cli`
    app()
