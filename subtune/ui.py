"""Terminal rendering of engine snapshots with rich."""
from typing import Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import APP_VERSION
from .models import EngineSnapshot, Phase, RepeatMode
from .utils import fmt_time

console = Console()

_PHASE_ICONS = {
    Phase.STOPPED: "[dim]■[/dim]",
    Phase.LOADING: "[yellow]…[/yellow]",
    Phase.PLAYING: "[green]♫[/green]",
    Phase.PAUSED: "[yellow]⏸[/yellow]",
    Phase.SEEKING: "[yellow]»[/yellow]",
    Phase.ERROR: "[red]✗[/red]",
}

_REPEAT_LABELS = {
    RepeatMode.OFF: "[dim]repeat off[/dim]",
    RepeatMode.ALL: "[cyan]repeat all[/cyan]",
    RepeatMode.ONE: "[cyan]repeat one[/cyan]",
}

HELP = (
    "space pause · n/p next/prev · ←/→ seek · ,/. big seek · ↑/↓ volume · "
    "j/k select · enter play · d remove · J/K move · s shuffle · r repeat · "
    "x stop · R retry · * star · l lyrics · q quit"
)


def print_header():
    console.print(
        f"\n  [bold cyan]♪  subtune[/bold cyan]"
        f"  [dim]v{APP_VERSION}[/dim]"
    )


def print_loaded(count: int, source: str):
    console.print(f"  [green]✓[/green] Queued [bold]{count}[/bold] tracks from {source}")


def progress_bar(position: float, duration: float, width: int = 30) -> str:
    if duration <= 0:
        return "[dim]" + "·" * width + "[/dim]"
    filled = min(width, int(position / duration * width))
    return "[green]" + "━" * filled + "[/green][dim]" + "·" * (width - filled) + "[/dim]"


def render_now_playing(snap: EngineSnapshot) -> Panel:
    icon = _PHASE_ICONS[snap.phase]
    if snap.track is None:
        body = "  [dim]Nothing playing. Pick a track with j/k and press enter.[/dim]"
        return Panel(body, title=f"{icon} subtune", border_style="cyan", padding=(0, 1))

    track = snap.track
    star = " [yellow]★[/yellow]" if snap.starred else ""
    lines = [
        f"  [bold]{track.title}[/bold]{star}",
        f"  {track.display_artist} [dim]·[/dim] {track.display_album}",
        f"  {fmt_time(snap.position)} {progress_bar(snap.position, snap.duration)} {track.duration_string()}",
        f"  [dim]vol {snap.volume}%[/dim]  ·  {'[cyan]shuffle[/cyan]' if snap.shuffle else '[dim]shuffle off[/dim]'}"
        f"  ·  {_REPEAT_LABELS[snap.repeat]}",
    ]
    if snap.error:
        lines.append(f"  [red]{snap.error.message}[/red]  [dim](R to retry, n to skip)[/dim]")

    border = "red" if snap.phase == Phase.ERROR else "green"
    return Panel("\n".join(lines), title=f"{icon} {snap.phase.value}", border_style=border, padding=(0, 1))


def render_lyrics(snap: EngineSnapshot, context: int = 2) -> Optional[Panel]:
    if not snap.lyrics:
        return None
    active = snap.lyric_index
    centre = active if active is not None else 0
    lo = max(0, centre - context)
    hi = min(len(snap.lyrics), centre + context + 1)

    text = Text()
    for i in range(lo, hi):
        line = snap.lyrics[i].text or "♪"
        style = "bold white" if i == active else "dim"
        text.append(f"  {line}\n", style=style)
    return Panel(text, title="Lyrics", border_style="magenta", padding=(0, 1))


def render_queue(snap: EngineSnapshot, selected: int, height: int = 10) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("", width=2)
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Artist", width=24)
    table.add_column("Time", width=7, justify="right")

    if not snap.queue:
        table.add_row("", "", "[dim]Queue is empty[/dim]", "", "")
        return table

    start = max(0, min(selected - height // 2, len(snap.queue) - height))
    for i in range(start, min(len(snap.queue), start + height)):
        track = snap.queue[i]
        marker = "[green]▶[/green]" if i == snap.current_index else ""
        title = f"[reverse]{track.title}[/reverse]" if i == selected else track.title
        table.add_row(marker, str(i + 1), title, track.display_artist[:24], track.duration_string())
    return table


def render(snap: EngineSnapshot, selected: int = 0, show_lyrics: bool = True) -> Group:
    """Whole screen for one snapshot."""
    parts = [render_now_playing(snap)]
    if show_lyrics:
        lyrics = render_lyrics(snap)
        if lyrics is not None:
            parts.append(lyrics)
    parts.append(render_queue(snap, selected))
    parts.append(Text(f"  {HELP}", style="dim"))
    return Group(*parts)
