from __future__ import annotations

import asyncio
import shlex
import shutil
import sys
from typing import Any, Optional

from gateway.errors import GatewayError

from .session import DashboardSession
from .state import DashboardState

CLEAR = "\x1b[2J\x1b[H"
HELP = "/gen <site> <partition> <type> | /release <n> <site> <partition> [reason] | /reset | /demo <type> | /gaps | /audit [limit] | /validate | /hide| /hide | /show | /quit"


def fmt_row(cols, widths):
    out = []
    for c, w in zip(cols, widths):
        s = (c if c is not None else "")[:w].ljust(w)
        out.append(s)
    return " ".join(out)


class Console:
    """Lines typed by the operator, plus an optional pending yes/no question."""

    def __init__(self) -> None:
        self.log: list[str] = []
        self.pending: Optional[asyncio.Future[bool]] = None
        self.tasks: set[asyncio.Task[Any]] = set()

    def add(self, line: str, max_lines: int = 200) -> None:
        self.log.append(line)
        if len(self.log) > max_lines:
            self.log.pop(0)

    async def confirm(self, prompt: str) -> bool:
        self.pending = asyncio.get_running_loop().create_future()
        self.add(f"[confirm] {prompt} (y/n)")
        try:
            return await self.pending
        finally:
            self.pending = None

    def spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)


async def _run_action(console: Console, label: str, coro) -> None:
    try:
        result = await coro
    except GatewayError as exc:
        console.add(f"[{label}] failed: {exc.reason}")
        return
    console.add(f"[{label}] done: {result}")


def _describe_gaps(gaps) -> list[str]:
    listed = ", ".join(str(g) for g in gaps.gaps) or "none"
    return [f"{gaps.count} gaps: {listed}"]


def _describe_audit(records) -> list[str]:
    if not records:
        return ["no audit records"]
    return [
        f"#{r.sequence_number} {r.operation_type or '?'} {r.status or ''} {r.timestamp or ''}".rstrip()
        for r in records
    ]


def _describe_integrity(report) -> list[str]:
    head = "integrity ok" if report.valid else "integrity issues"
    lines = [f"{head}: {report.summary or '-'}"]
    for issue in report.issues or []:
        lines.append(f"  {issue}")
    return lines


def _positive(text: str) -> bool:
    return text.isdigit() and int(text) >= 1


async def _show(console: Console, label: str, coro, describe) -> None:
    try:
        result = await coro
    except GatewayError as exc:
        console.add(f"[{label}] failed: {exc.reason}")
        return
    for line in describe(result):
        console.add(f"[{label}] {line}")


async def handle_command(session: DashboardSession, console: Console, msg: str) -> bool:
    """Apply one console line; returns False when the operator asked to quit."""
    if console.pending is not None and not console.pending.done():
        console.pending.set_result(msg.lower() in ("y", "yes"))
        return True
    try:
        parts = shlex.split(msg)
    except ValueError:
        console.add(f"[sys] cannot parse: {msg}")
        return True
    if not parts:
        return True
    cmd, args = parts[0], parts[1:]
    actions = session.actions
    if cmd == "/quit":
        return False
    if cmd == "/gen" and len(args) == 3:
        console.spawn(_run_action(console, "gen", actions.generate(*args)))
    elif cmd == "/release" and len(args) in (3, 4) and _positive(args[0]):
        console.spawn(
            _run_action(console, "release", actions.release(int(args[0]), *args[1:]))
        )
    elif cmd == "/reset":
        console.spawn(_run_action(console, "reset", actions.reset(console.confirm)))
    elif cmd == "/demo" and len(args) == 1:
        console.spawn(_run_action(console, "demo", actions.run_demo(args[0])))
    elif cmd == "/gaps" and not args:
        console.spawn(_show(console, "gaps", actions.gaps(), _describe_gaps))
    elif cmd == "/audit" and len(args) <= 1 and all(a.isdigit() for a in args):
        limit = int(args[0]) if args else 20
        console.spawn(_show(console, "audit", actions.audit(limit), _describe_audit))
    elif cmd == "/validate" and not args:
        console.spawn(_show(console, "validate", actions.validate(), _describe_integrity))
    elif cmd == "/hide":
        session.scheduler.set_visible(False)
    elif cmd == "/show":
        session.scheduler.set_visible(True)
    else:
        console.add(f"[sys] usage: {HELP}")
    return True


async def input_loop(session: DashboardSession, console: Console):
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    while True:
        line = await reader.readline()
        if not line:
            await asyncio.sleep(0.1)
            continue
        msg = line.decode(errors="replace").strip()
        if not msg:
            continue
        if not await handle_command(session, console, msg):
            raise KeyboardInterrupt


def render(state: DashboardState, console: Console, cols: int) -> list[str]:
    snap = state.snapshot()
    stats = snap["stats"] or {}
    health = snap["health"]
    lines = [
        "Sequence Dashboard — Ctrl+C to exit".ljust(cols),
        "-" * cols,
        f"health: {health['indicator']}"
        + (f" ({health['error']})" if health["error"] else "")
        + ("" if state.visible else "   [paused]"),
        "counter={} generated={} gaps={} avg_ms={}".format(
            stats.get("currentCounter", "-"),
            stats.get("totalGenerated", "-"),
            stats.get("availableGaps", "-"),
            stats.get("averageLatencyMs", "-"),
        ),
        f"last sequence: {snap['lastSequence']['display']}  {snap['lastSequence']['details']}",
        "-" * cols,
    ]
    headers = ["seq", "site-partition", "type", "gap", "ms"]
    widths = [10, 24, 12, 4, 8]
    lines.append(fmt_row(headers, widths))
    for item in snap["history"][:10]:
        row = [
            str(item["sequence"]),
            f"{item['siteId']}-{item['partitionId']}",
            item["invoiceType"],
            "Y" if item["isGapFilled"] else "N",
            str(item["processingTime"] or 0),
        ]
        lines.append(fmt_row(row, widths))
    lines.append("-" * cols)
    dist = snap["charts"]["distribution"]
    lines.append(
        "by site-partition: "
        + (", ".join(f"{k}={v}" for k, v in zip(dist["labels"], dist["data"])) or "-")
    )
    for line in snap["demo"][-8:]:
        marker = "!" if line["style"] == "error" else " "
        lines.append(f"{marker} {line['text']}"[:cols])
    lines.append("-" * cols)
    for note in snap["notifications"]:
        lines.append(f" * [{note['level']}] {note['message']}"[:cols])
    lines.append(HELP[:cols])
    for line in console.log[-5:]:
        lines.append(f" {line}"[:cols])
    return lines


async def draw_loop(state: DashboardState, console: Console, refresh: float = 0.5):
    while True:
        cols = shutil.get_terminal_size((120, 40)).columns
        print(CLEAR, end="")
        print("\n".join(render(state, console, cols)))
        sys.stdout.flush()
        await asyncio.sleep(refresh)


async def run_tui(session: DashboardSession, refresh: float = 0.5):
    console = Console()
    session.actions.confirm = console.confirm

    tasks = [
        asyncio.create_task(draw_loop(session.state, console, refresh)),
        asyncio.create_task(input_loop(session, console)),
    ]
    try:
        await asyncio.gather(*tasks)
    except KeyboardInterrupt:
        pass
    finally:
        for t in tasks + list(console.tasks):
            t.cancel()
