from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import sys

from config import get_settings
from dashboard.session import DashboardSession

logger = logging.getLogger("dashboard")


def _log_health(session: DashboardSession):
    last = {"indicator": None}

    def on_change(topic: str) -> None:
        if topic != "health":
            return
        indicator = session.state.health_indicator
        if indicator != last["indicator"]:
            last["indicator"] = indicator
            logger.info("service health: %s", indicator.value)

    return on_change


async def run(settings, ui: str, *, refresh: float, web_host: str, web_port: int):
    session = DashboardSession(settings)
    web_dash = None
    try:
        await session.start()
        if ui == "web":
            from dashboard.web import WebDashboard

            web_dash = WebDashboard(session, host=web_host, port=web_port)
            await web_dash.start()
            stopper = asyncio.Event()
            try:
                await stopper.wait()
            except asyncio.CancelledError:
                pass
        elif ui == "tui":
            from dashboard.tui import run_tui

            await run_tui(session, refresh=refresh)
        else:
            session.state.events.subscribe(_log_health(session))
            stopper = asyncio.Event()
            with contextlib.suppress(asyncio.CancelledError):
                await stopper.wait()
    except asyncio.CancelledError:
        pass
    finally:
        if web_dash:
            await web_dash.stop()
        await session.shutdown()


def main():
    settings = get_settings()
    p = argparse.ArgumentParser(description="Sequential number service dashboard")
    p.add_argument(
        "--api-url",
        default=settings.api_url,
        help="Base URL of the sequence service.",
    )
    p.add_argument(
        "--ui",
        choices=["tui", "web", "none"],
        default=settings.ui,
        help="Dashboard mode to launch (tui, web, none).",
    )
    p.add_argument(
        "--ui-refresh",
        type=float,
        default=settings.refresh,
        help="Redraw interval for the terminal UI (seconds).",
    )
    p.add_argument("--web-host", default=settings.web_host, help="Host interface for the web UI.")
    p.add_argument("--web-port", type=int, default=settings.web_port, help="Port for the web UI.")
    p.add_argument(
        "--discard-stale",
        action="store_true",
        default=settings.discard_stale,
        help="Drop poll responses older than the last one applied.",
    )
    p.add_argument("--log-level", default=settings.log_level, help="Logging level.")
    args = p.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        # the terminal UI owns stdout
        stream=sys.stderr,
    )
    settings = dataclasses.replace(
        settings, api_url=args.api_url, discard_stale=args.discard_stale
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(
            run(
                settings,
                ui=args.ui,
                refresh=args.ui_refresh,
                web_host=args.web_host,
                web_port=args.web_port,
            )
        )


if __name__ == "__main__":
    main()
