"""Startup preflight check: dependencies, decoder, output device, server."""
import shutil
from importlib import metadata
from typing import NamedTuple

from rich.console import Console
from rich.table import Table

from .catalog import SubsonicClient
from .config import APP_VERSION, AUDIO_DEVICE
from .errors import PlaybackError

console = Console()

REQUIRED_DISTRIBUTIONS = ("httpx", "numpy", "sounddevice", "rich", "python-dotenv")


class CheckResult(NamedTuple):
    ok: bool
    detail: str
    fix: str = ""


async def run_preflight(client: SubsonicClient) -> bool:
    """Run every startup check, print a summary table and any fixes.

    Returns True only when all checks pass.
    """
    console.print(f"\n  [bold]♪  subtune v{APP_VERSION}[/bold] [dim]preflight check[/dim]\n")

    checks = {
        "Python deps": _check_python_deps,
        "ffmpeg": _check_ffmpeg,
        "Audio output": _check_output_device,
        "Subsonic server": lambda: _check_server(client),
    }

    table = Table(show_header=False, box=None, padding=(0, 2))
    failed: dict[str, CheckResult] = {}
    for label, check in checks.items():
        result = await check()
        mark = "[green]✓[/green]" if result.ok else "[red]✗[/red]"
        colour = "green" if result.ok else "red"
        table.add_row(mark, label, f"[{colour}]{result.detail}[/{colour}]")
        if not result.ok:
            failed[label] = result
    console.print(table)

    if not failed:
        console.print("")
        return True

    for label, result in failed.items():
        if not result.fix:
            continue
        console.print(f"\n  [yellow]{label}:[/yellow]")
        for line in result.fix.strip().splitlines():
            console.print(f"    {line}")
    console.print("\n  Then run [bold]subtune[/bold] again.\n")
    return False


async def _check_python_deps() -> CheckResult:
    found, missing = [], []
    for dist in REQUIRED_DISTRIBUTIONS:
        try:
            found.append(f"{dist} {metadata.version(dist)}")
        except metadata.PackageNotFoundError:
            missing.append(dist)
    if missing:
        return CheckResult(False, f"missing: {', '.join(missing)}", "pip install -e .")
    return CheckResult(True, f"{len(found)} packages")


async def _check_ffmpeg() -> CheckResult:
    path = shutil.which("ffmpeg")
    if path:
        return CheckResult(True, path)
    return CheckResult(False, "not found on PATH", (
        "ffmpeg decodes every stream. Install it with:\n"
        "  apt install ffmpeg    (Debian/Ubuntu)\n"
        "  brew install ffmpeg   (macOS)"
    ))


async def _check_output_device() -> CheckResult:
    # sounddevice raises OSError at import time when PortAudio is absent
    try:
        import sounddevice as sd
    except OSError as e:
        return CheckResult(False, "PortAudio library missing", (
            f"{e}\n"
            "  apt install libportaudio2   (Debian/Ubuntu)\n"
            "  brew install portaudio      (macOS)"
        ))

    try:
        info = sd.query_devices(AUDIO_DEVICE, kind="output")
    except (ValueError, sd.PortAudioError) as e:
        return CheckResult(False, "no output device", (
            f"{e}\n"
            "Set AUDIO_DEVICE in .env to a device listed by `python -m sounddevice`."
        ))
    return CheckResult(True, info["name"])


async def _check_server(client: SubsonicClient) -> CheckResult:
    if not client.base_url:
        return CheckResult(False, "not configured", (
            "Set SUBSONIC_URL plus SUBSONIC_USER/SUBSONIC_PASSWORD\n"
            "(or SUBSONIC_API_KEY) in .env, or pass --server/--user/--password."
        ))
    try:
        await client.ping()
    except PlaybackError as e:
        return CheckResult(False, e.message[:60], (
            f"Could not talk to {client.base_url}.\n"
            "Check the URL and that your credentials are accepted."
        ))
    return CheckResult(True, f"reachable at {client.base_url.split('://')[-1]}")
