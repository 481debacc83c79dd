from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict

from aiohttp import WSMsgType, web

from gateway.errors import GatewayError, ValidationFailure
from models.wire import dump_wire

from .session import DashboardSession

logger = logging.getLogger(__name__)


class WebDashboard:
    """Browser front-end: JSON API plus a websocket that pushes state changes."""

    def __init__(
        self,
        session: DashboardSession,
        *,
        host: str = "127.0.0.1",
        port: int = 8000,
    ) -> None:
        self.session = session
        self.state = session.state
        self.actions = session.actions
        self.host = host
        self.port = port
        self._app = web.Application()
        self._runner: web.AppRunner | None = None
        self._site: web.BaseSite | None = None
        self._clients: set[web.WebSocketResponse] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._flush_pending = False
        self._unsubscribe = None
        self._build_routes()

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        self._unsubscribe = self.state.events.subscribe(self._on_state_change)
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("web dashboard on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        for t in list(self._tasks):
            t.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await t
        self._tasks.clear()
        for ws in list(self._clients):
            await ws.close()
        self._clients.clear()
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @property
    def app(self) -> web.Application:
        return self._app

    # ------------------------------------------------------------------
    def _build_routes(self) -> None:
        self._app.router.add_get("/", self._index)
        self._app.router.add_get("/ws", self._websocket_handler)
        self._app.router.add_get("/api/state", self._state_api)
        self._app.router.add_post("/api/generate", self._generate)
        self._app.router.add_post("/api/release", self._release)
        self._app.router.add_post("/api/reset", self._reset)
        self._app.router.add_post("/api/demo/{demo_type}", self._demo)
        self._app.router.add_get("/api/gaps", self._gaps)
        self._app.router.add_get("/api/audit", self._audit)
        self._app.router.add_get("/api/validate", self._validate)
        self._app.router.add_post("/api/visibility", self._visibility)
        self._app.router.add_post(
            "/api/notifications/{note_id}/dismiss", self._dismiss
        )

    def _track_task(self, coro) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    async def _index(self, request: web.Request) -> web.Response:
        return web.Response(text=self._render_index(), content_type="text/html")

    async def _websocket_handler(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        self._clients.add(ws)
        try:
            await ws.send_json({"type": "snapshot", "payload": self.state.snapshot()})
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        continue
                    if data.get("type") == "visibility":
                        self.session.scheduler.set_visible(bool(data.get("visible")))
                elif msg.type == WSMsgType.ERROR:
                    break
        finally:
            self._clients.discard(ws)
            await ws.close()
        return ws

    async def _state_api(self, request: web.Request) -> web.Response:
        return web.json_response(self.state.snapshot())

    async def _read_json(self, request: web.Request) -> Dict[str, Any]:
        if not request.can_read_body:
            return {}
        try:
            data = await request.json()
        except json.JSONDecodeError:
            raise web.HTTPBadRequest(text="invalid json")
        if not isinstance(data, dict):
            raise web.HTTPBadRequest(text="expected a json object")
        return data

    async def _generate(self, request: web.Request) -> web.Response:
        data = await self._read_json(request)
        try:
            resp = await self.actions.generate(
                str(data.get("siteId") or ""),
                str(data.get("partitionId") or ""),
                str(data.get("invoiceType") or ""),
            )
        except ValidationFailure as exc:
            return web.json_response({"success": False, "error": exc.reason}, status=400)
        except GatewayError as exc:
            return web.json_response({"success": False, "error": exc.reason}, status=502)
        return web.json_response(
            {"success": True, "sequence": resp.first_sequence, "gapFilled": resp.gap_filled}
        )

    async def _release(self, request: web.Request) -> web.Response:
        data = await self._read_json(request)
        number = data.get("sequenceNumber")
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            return web.json_response(
                {"success": False, "error": "sequenceNumber must be a positive integer"},
                status=400,
            )
        ok = await self.actions.release(
            number,
            str(data.get("siteId") or ""),
            str(data.get("partitionId") or ""),
            str(data.get("reason") or "manual-release"),
        )
        return web.json_response({"success": ok}, status=200 if ok else 502)

    async def _reset(self, request: web.Request) -> web.Response:
        data = await self._read_json(request)
        confirmed = data.get("confirm") is True

        async def answer(prompt: str) -> bool:
            return confirmed

        ok = await self.actions.reset(confirm=answer)
        if not confirmed:
            return web.json_response(
                {"success": False, "error": "confirmation required"}, status=409
            )
        return web.json_response({"success": ok}, status=200 if ok else 502)

    async def _demo(self, request: web.Request) -> web.Response:
        demo_type = request.match_info["demo_type"]
        result = await self.actions.run_demo(demo_type, dict(request.query) or None)
        if result is None:
            return web.json_response({"success": False}, status=502)
        return web.json_response({"success": result.success, "name": result.name})

    async def _inspect(self, call) -> web.Response:
        try:
            result = await call
        except ValidationFailure as exc:
            return web.json_response({"success": False, "error": exc.reason}, status=400)
        except GatewayError as exc:
            return web.json_response({"success": False, "error": exc.reason}, status=502)
        if isinstance(result, list):
            return web.json_response([dump_wire(r) for r in result])
        return web.json_response(dump_wire(result))

    async def _gaps(self, request: web.Request) -> web.Response:
        return await self._inspect(self.actions.gaps())

    async def _audit(self, request: web.Request) -> web.Response:
        try:
            limit = int(request.query.get("limit", "100"))
            seq = request.query.get("sequenceNumber")
            sequence_number = int(seq) if seq is not None else None
        except ValueError:
            return web.json_response(
                {"success": False, "error": "limit and sequenceNumber must be integers"},
                status=400,
            )
        return await self._inspect(
            self.actions.audit(limit, sequence_number=sequence_number)
        )

    async def _validate(self, request: web.Request) -> web.Response:
        return await self._inspect(self.actions.validate())

    async def _visibility(self, request: web.Request) -> web.Response:
        data = await self._read_json(request)
        visible = bool(data.get("visible", True))
        changed = self.session.scheduler.set_visible(visible)
        return web.json_response({"visible": visible, "changed": changed})

    async def _dismiss(self, request: web.Request) -> web.Response:
        removed = self.state.notifications.dismiss(request.match_info["note_id"])
        return web.json_response({"removed": removed})

    # ------------------------------------------------------------------
    def _on_state_change(self, topic: str) -> None:
        if self._flush_pending or not self._clients:
            return
        self._flush_pending = True
        self._track_task(self._flush())

    async def _flush(self) -> None:
        # one broadcast per loop turn, however many topics changed
        await asyncio.sleep(0)
        self._flush_pending = False
        await self._broadcast({"type": "snapshot", "payload": self.state.snapshot()})

    async def _broadcast(self, message: dict[str, Any]) -> None:
        if not self._clients:
            return
        data = json.dumps(message)
        stale: list[web.WebSocketResponse] = []
        for ws in list(self._clients):
            if ws.closed:
                stale.append(ws)
                continue
            try:
                await ws.send_str(data)
            except ConnectionResetError:
                stale.append(ws)
            except RuntimeError:
                stale.append(ws)
        for ws in stale:
            self._clients.discard(ws)

    # ------------------------------------------------------------------
    def _render_index(self) -> str:
        return """<!DOCTYPE html>
<html lang=\"en\">
<head>
<meta charset=\"utf-8\" />
<title>Sequence Dashboard</title>
<script src=\"https://cdn.jsdelivr.net/npm/chart.js\"></script>
<style>
body { margin:0; font-family: system-ui, -apple-system, sans-serif; background:#f4f6f8; color:#2c3e50; }
header { display:flex; justify-content:space-between; align-items:center; padding:1rem 1.5rem; background:#2c3e50; color:white; }
main { display:grid; grid-template-columns: 1fr 1fr; gap:1rem; padding:1rem 1.5rem; }
.card { background:white; border-radius:10px; padding:1rem; box-shadow:0 1px 3px rgba(0,0,0,0.1); }
.stats { display:grid; grid-template-columns: repeat(4, 1fr); gap:0.5rem; text-align:center; }
.stats b { display:block; font-size:1.4rem; }
#lastSequence { font-size:2.5rem; font-weight:700; }
.health-indicator { padding:0.4rem 0.8rem; border-radius:8px; font-size:0.9rem; }
.health-healthy { background:#27ae60; } .health-unhealthy { background:#e67e22; }
.health-unreachable { background:#e74c3c; } .health-unknown { background:#7f8c8d; }
.history-item { display:flex; justify-content:space-between; border-bottom:1px solid #ecf0f1; padding:0.4rem 0; }
.gap-badge { background:#f39c12; color:white; border-radius:4px; padding:0 0.3rem; font-size:0.75rem; }
.demo-step { padding:0.25rem 0.5rem; border-left:3px solid #3498db; margin:0.2rem 0; }
.demo-success { border-color:#27ae60; } .demo-error { border-color:#e74c3c; color:#c0392b; }
.demo-summary { font-weight:bold; margin-top:0.6rem; }
#toasts { position:fixed; top:20px; right:20px; display:flex; flex-direction:column; gap:0.5rem; }
.toast { padding:0.8rem 1.2rem; border-radius:8px; color:white; cursor:pointer; transition:opacity 0.3s, transform 0.3s; }
.toast.leaving { opacity:0; transform:translateX(100%); }
.toast.info { background:#3498db; } .toast.success { background:#27ae60; }
.toast.warning { background:#f39c12; } .toast.error { background:#e74c3c; }
.chart { height:260px; }
button { padding:0.5rem 0.9rem; border:none; border-radius:6px; background:#3498db; color:white; cursor:pointer; margin:0.15rem; }
button.danger { background:#e74c3c; }
</style>
</head>
<body>
<header>
  <h1 style=\"margin:0; font-size:1.3rem;\">Sequential Number Dashboard</h1>
  <span id=\"systemHealth\" class=\"health-indicator health-unknown\">Checking...</span>
</header>
<main>
  <section class=\"card\">
    <div class=\"stats\">
      <div><b id=\"currentCounter\">-</b>Counter</div>
      <div><b id=\"totalGenerated\">-</b>Generated</div>
      <div><b id=\"availableGaps\">-</b>Gaps</div>
      <div><b id=\"avgLatency\">-</b>Avg ms</div>
    </div>
    <div id=\"lastSequence\">-</div>
    <div id=\"sequenceDetails\"></div>
    <div>
      <button onclick=\"generate('site-1','partition-a','on-cycle')\">site-1 / partition-a</button>
      <button onclick=\"generate('site-1','partition-b','off-cycle')\">site-1 / partition-b</button>
      <button onclick=\"generate('site-2','partition-a','simulated')\">site-2 / partition-a</button>
      <button onclick=\"generate('site-2','partition-b','suppressed')\">site-2 / partition-b</button>
    </div>
  </section>
  <section class=\"card\"><div class=\"chart\"><canvas id=\"sequenceChart\"></canvas></div></section>
  <section class=\"card\"><h3>History</h3><div id=\"sequenceHistory\"></div></section>
  <section class=\"card\"><div class=\"chart\"><canvas id=\"distributionChart\"></canvas></div></section>
  <section class=\"card\" style=\"grid-column: span 2;\">
    <button onclick=\"runDemo('basic')\">Basic</button>
    <button onclick=\"runDemo('concurrent')\">Concurrent</button>
    <button onclick=\"runDemo('gaps')\">Gaps</button>
    <button onclick=\"runDemo('load-test')\">Load test</button>
    <button onclick=\"inspect('gaps')\">Gaps</button>
    <button onclick=\"inspect('validate')\">Validate</button>
    <button onclick=\"inspect('audit?limit=20')\">Audit</button>
    <button class=\"danger\" onclick=\"resetSystem()\">Reset System</button>
    <pre id=\"inspectResult\"></pre>
    <div id=\"demoResult\"></div>
  </section>
</main>
<div id=\"toasts\"></div>
<script>
const timeline = new Chart(document.getElementById('sequenceChart'), {
  type: 'line',
  data: { labels: [], datasets: [{ label: 'Sequence Numbers Generated', data: [], borderColor: '#3498db', tension: 0.4, fill: true }] },
  options: { responsive: true, maintainAspectRatio: false }
});
const distribution = new Chart(document.getElementById('distributionChart'), {
  type: 'doughnut',
  data: { labels: [], datasets: [{ data: [], backgroundColor: ['#3498db','#e74c3c','#f39c12','#27ae60','#9b59b6','#1abc9c'] }] },
  options: { responsive: true, maintainAspectRatio: false, plugins: { legend: { position: 'bottom' } } }
});
const healthText = { healthy: 'System Healthy', unhealthy: 'System Issues Detected', unreachable: 'Cannot Connect to System', unknown: 'Checking...' };

function text(id, value) { document.getElementById(id).textContent = value; }
function esc(s) { const d = document.createElement('div'); d.textContent = s == null ? '' : String(s); return d.innerHTML; }

function render(s) {
  const st = s.stats || {};
  text('currentCounter', st.currentCounter ?? '-');
  text('totalGenerated', st.totalGenerated ?? '-');
  text('availableGaps', st.availableGaps ?? '-');
  text('avgLatency', st.averageLatencyMs != null ? st.averageLatencyMs.toFixed(2) : '-');
  const h = document.getElementById('systemHealth');
  h.className = 'health-indicator health-' + s.health.indicator;
  h.textContent = healthText[s.health.indicator] + (s.health.indicator === 'healthy' ? ` • ${s.health.currentCounter} sequences generated` : '');
  text('lastSequence', s.lastSequence.display);
  text('sequenceDetails', s.lastSequence.details);
  document.getElementById('sequenceHistory').innerHTML = s.history.length ? s.history.map(i =>
    `<div class=\"history-item\"><div>#${i.sequence} ${i.isGapFilled ? '<span class=\"gap-badge\">Gap Filled</span>' : ''}</div>` +
    `<div>${esc(i.siteId)}-${esc(i.partitionId)} (${esc(i.invoiceType)}) • ${i.processingTime || 0}ms</div></div>`).join('')
    : '<p>No sequences generated yet.</p>';
  timeline.data.labels = s.charts.timeline.labels;
  timeline.data.datasets[0].data = s.charts.timeline.data;
  timeline.update('none');
  distribution.data.labels = s.charts.distribution.labels;
  distribution.data.datasets[0].data = s.charts.distribution.data;
  distribution.update('none');
  document.getElementById('demoResult').innerHTML = s.demo.map(l =>
    `<div class=\"demo-step demo-${l.style}\">${esc(l.text)}</div>`).join('');
  document.getElementById('toasts').innerHTML = s.notifications.map(n =>
    `<div class=\"toast ${n.level}${n.leaving ? ' leaving' : ''}\" onclick=\"dismiss('${n.id}')\">${esc(n.message)}</div>`).join('');
}

async function post(path, body) {
  const res = await fetch(path, { method: 'POST', headers: { 'Content-Type': 'application/json' }, body: JSON.stringify(body || {}) });
  return res.json();
}
function generate(site, partition, type) { post('/api/generate', { siteId: site, partitionId: partition, invoiceType: type }); }
function runDemo(type) { post('/api/demo/' + encodeURIComponent(type)); }
function resetSystem() {
  if (!confirm('Are you sure you want to reset the entire system? This will clear all sequence data!')) return;
  post('/api/reset', { confirm: true });
}
async function inspect(path) {
  const res = await fetch('/api/' + path);
  text('inspectResult', JSON.stringify(await res.json(), null, 2));
}
function dismiss(id) { post(`/api/notifications/${id}/dismiss`); }

let socket = null;
function setupSocket() {
  const proto = location.protocol === 'https:' ? 'wss' : 'ws';
  socket = new WebSocket(`${proto}://${location.host}/ws`);
  socket.addEventListener('message', (event) => {
    const data = JSON.parse(event.data);
    if (data.type === 'snapshot') render(data.payload);
  });
  socket.addEventListener('close', () => setTimeout(setupSocket, 2000));
}
document.addEventListener('visibilitychange', () => {
  if (socket && socket.readyState === WebSocket.OPEN) {
    socket.send(JSON.stringify({ type: 'visibility', visible: !document.hidden }));
  }
});
fetch('/api/state').then(r => r.json()).then(render);
setupSocket();
</script>
</body>
</html>"""
