"""subtune: terminal client for Subsonic / OpenSubsonic servers. Entry point."""
import argparse
import asyncio
import logging
import sys

from rich import print as rprint
from rich.live import Live

from subtune.catalog import SubsonicClient
from subtune.config import (
    DEV_MODE,
    LOG_FILE,
    OUTPUT_DIR,
    SUBSONIC_API_KEY,
    SUBSONIC_PASSWORD,
    SUBSONIC_URL,
    SUBSONIC_USER,
    TICK_INTERVAL,
    WEB_PORT,
)
from subtune.engine import PlaybackEngine
from subtune.errors import PlaybackError
from subtune.input import View, handle_key, read_key
from subtune.intents import ReplaceQueue
from subtune.models import Track
from subtune.preflight import run_preflight
from subtune.ui import console, print_header, print_loaded, render
from subtune.web.state import SnapshotHub

logger = logging.getLogger("subtune")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="subtune", description="Play music from a Subsonic server.")
    parser.add_argument("--server", default=SUBSONIC_URL, help="server URL (default: $SUBSONIC_URL)")
    parser.add_argument("--user", default=SUBSONIC_USER)
    parser.add_argument("--password", default=SUBSONIC_PASSWORD)
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--album", metavar="ID", help="queue an album")
    source.add_argument("--playlist", metavar="ID", help="queue a playlist")
    source.add_argument("--random", metavar="N", type=int, default=50, help="queue N random songs (default)")
    parser.add_argument("--remote", action="store_true", help="serve the remote-control API")
    parser.add_argument("--port", type=int, default=WEB_PORT)
    parser.add_argument("--skip-preflight", action="store_true")
    return parser.parse_args(argv)


def _setup_logging():
    # The terminal belongs to the UI; everything else goes to the log file
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=LOG_FILE,
        level=logging.DEBUG if DEV_MODE else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _load_tracks(client: SubsonicClient, args) -> tuple[list[Track], str]:
    if args.album:
        return await client.get_album_songs(args.album), f"album {args.album}"
    if args.playlist:
        return await client.get_playlist_songs(args.playlist), f"playlist {args.playlist}"
    return await client.get_random_songs(args.random), "random songs"


async def _start_remote(engine: PlaybackEngine, hub: SnapshotHub, port: int):
    import uvicorn
    from subtune.web.server import create_app

    config = uvicorn.Config(create_app(engine, hub), host="0.0.0.0", port=port, log_level="warning")
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve())
    console.print(f"  [green]✓[/green] Remote control on [bold]http://localhost:{port}[/bold]")
    return server, task


async def main(argv=None):
    args = _parse_args(argv)
    _setup_logging()
    print_header()

    client = SubsonicClient(args.server, args.user, args.password, api_key=SUBSONIC_API_KEY)
    try:
        if not args.skip_preflight and not await run_preflight(client):
            sys.exit(1)

        try:
            tracks, source = await _load_tracks(client, args)
        except PlaybackError as e:
            console.print(f"  [red]✗[/red] Could not load tracks: {e.message}")
            sys.exit(1)
        if not tracks:
            console.print(f"  [yellow]Nothing to play in {source}.[/yellow]")
            return
        print_loaded(len(tracks), source)

        hub = SnapshotHub()
        engine = PlaybackEngine(client, hub=hub)
        await engine.dispatch(ReplaceQueue(tuple(tracks), start=0))
        engine_task = asyncio.create_task(engine.run())

        remote = None
        if args.remote:
            remote = await _start_remote(engine, hub, args.port)

        try:
            await _ui_loop(engine)
        finally:
            await engine.shutdown()
            engine_task.cancel()
            if remote:
                server, task = remote
                server.should_exit = True
                await task
    finally:
        await client.aclose()

    console.print("\n  [bold cyan]♪[/bold cyan]  See you next time.\n")


async def _ui_loop(engine: PlaybackEngine):
    loop = asyncio.get_running_loop()
    view = View()

    with Live(render(engine.snapshot), console=console, auto_refresh=False) as live:

        async def _redraw():
            while not view.quit:
                live.update(render(engine.snapshot, view.selected, view.show_lyrics), refresh=True)
                await asyncio.sleep(TICK_INTERVAL)

        redraw_task = asyncio.create_task(_redraw())
        try:
            while not view.quit:
                key = await loop.run_in_executor(None, read_key)
                intent = handle_key(key, engine.snapshot, view)
                if intent is not None:
                    logger.debug("Key %r -> %r", key, intent)
                    await engine.dispatch(intent)
                live.update(render(engine.snapshot, view.selected, view.show_lyrics), refresh=True)
        finally:
            redraw_task.cancel()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        rprint("\n\n  [bold]Stopped.[/bold] Goodbye.\n")
        sys.exit(0)


if __name__ == "__main__":
    cli()
