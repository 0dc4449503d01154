"""Debug GUI server: live map of a navigation session."""

import asyncio
import http.server
import json
import queue
import socketserver
import threading
import time
import webbrowser
from functools import partial
from typing import Callable, Optional

from .config import CONFIG
from .models import NavigationUpdate, Position, Route


# HTML template for the debug GUI
DEBUG_GUI_HTML = '''<!DOCTYPE html>
<html>
<head>
    <title>routewatch debug</title>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; height: 100vh; display: flex; flex-direction: column; }
        header { background: #0f172a; color: white; padding: 10px 18px; display: flex; justify-content: space-between; align-items: center; }
        header h1 { font-size: 16px; font-weight: 600; }
        #conn { padding: 3px 10px; border-radius: 10px; font-size: 12px; background: #ef4444; }
        #conn.up { background: #22c55e; }
        main { display: flex; flex: 1; overflow: hidden; }
        #map { flex: 1; }
        aside { width: 360px; display: flex; flex-direction: column; background: #f1f5f9; border-left: 1px solid #cbd5e1; }
        .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 8px; padding: 12px; }
        .cell { background: white; border: 1px solid #e2e8f0; border-radius: 5px; padding: 8px; }
        .cell .k { font-size: 11px; color: #64748b; }
        .cell .v { font-size: 15px; font-weight: 600; color: #0f172a; }
        .alert { color: #b91c1c; }
        #events { flex: 1; overflow-y: auto; background: #0f172a; color: #cbd5e1; font-family: Menlo, monospace; font-size: 12px; padding: 10px; }
        #events div { margin-bottom: 5px; }
        #events .kind { color: #facc15; }
    </style>
</head>
<body>
    <header><h1>routewatch debug - click the map to move</h1><span id="conn">Disconnected</span></header>
    <main>
        <div id="map"></div>
        <aside>
            <div class="grid">
                <div class="cell"><div class="k">Mode</div><div class="v" id="mode">-</div></div>
                <div class="cell"><div class="k">Speed</div><div class="v" id="speed">-</div></div>
                <div class="cell"><div class="k">From route</div><div class="v" id="distance">-</div></div>
                <div class="cell"><div class="k">On route</div><div class="v" id="onroute">-</div></div>
                <div class="cell"><div class="k">Heading / route</div><div class="v" id="heading">-</div></div>
                <div class="cell"><div class="k">Wrong way</div><div class="v" id="wrongway">-</div></div>
            </div>
            <div id="events"></div>
        </aside>
    </main>
    <script>
        var map = L.map('map').setView([0, 0], 2);
        L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {maxZoom: 19}).addTo(map);
        var routeLine = null, altLayer = L.layerGroup().addTo(map), marker = null, ws = null;

        function fmt(v, unit) { return (v === null || v === undefined) ? '-' : Math.round(v) + unit; }

        function showRoute(route) {
            if (routeLine) { map.removeLayer(routeLine); }
            routeLine = L.polyline(route.path, {color: '#2563eb', weight: 6, opacity: 0.8}).addTo(map);
            map.fitBounds(routeLine.getBounds(), {padding: [30, 30]});
        }

        function showState(s) {
            document.getElementById('mode').textContent = s.transport_mode;
            document.getElementById('speed').textContent = s.speed.toFixed(1) + ' m/s';
            document.getElementById('distance').textContent = fmt(s.distance_from_route, ' m');
            var onroute = document.getElementById('onroute');
            onroute.textContent = s.is_on_route ? 'yes' : 'no (' + Math.round(s.deviation_duration) + ' s)';
            onroute.className = s.is_on_route ? 'v' : 'v alert';
            document.getElementById('heading').textContent = fmt(s.movement_heading, '°') + ' / ' + fmt(s.route_direction, '°');
            var ww = document.getElementById('wrongway');
            ww.textContent = s.wrong_way_active ? 'YES x' + s.wrong_way_count : 'no';
            ww.className = s.wrong_way_active ? 'v alert' : 'v';
            if (s.last_position) {
                var pos = [s.last_position.lat, s.last_position.lng];
                var color = s.is_on_route ? '#16a34a' : '#dc2626';
                if (marker) { marker.setLatLng(pos); marker.setStyle({fillColor: color}); }
                else { marker = L.circleMarker(pos, {radius: 9, fillColor: color, color: '#fff', weight: 3, fillOpacity: 1}).addTo(map); }
            }
        }

        function addEvent(e) {
            var box = document.getElementById('events');
            var line = document.createElement('div');
            var detail = Object.assign({}, e); delete detail.kind; delete detail.routes;
            line.innerHTML = '[' + new Date().toLocaleTimeString() + '] <span class="kind">' + e.kind + '</span> ' + JSON.stringify(detail);
            box.appendChild(line);
            box.scrollTop = box.scrollHeight;
            while (box.children.length > 200) { box.removeChild(box.firstChild); }
            if (e.kind === 'alternatives_found') {
                altLayer.clearLayers();
                e.routes.forEach(function(r) { L.polyline(r.path, {color: '#9333ea', weight: 4, dashArray: '6 6'}).addTo(altLayer); });
            }
            if (e.kind === 'back_on_route') { altLayer.clearLayers(); }
        }

        function connect() {
            ws = new WebSocket('ws://' + window.location.hostname + ':{{WS_PORT}}');
            ws.onopen = function() { var c = document.getElementById('conn'); c.textContent = 'Connected'; c.className = 'up'; };
            ws.onclose = function() { var c = document.getElementById('conn'); c.textContent = 'Disconnected'; c.className = ''; setTimeout(connect, 2000); };
            ws.onmessage = function(msg) {
                var m = JSON.parse(msg.data);
                if (m.type === 'route') { showRoute(m.data); }
                else if (m.type === 'update') { showState(m.data.state); m.data.events.forEach(addEvent); }
                else if (m.type === 'log') { addEvent({kind: 'log', message: m.data.message}); }
            };
        }

        map.on('click', function(e) {
            if (ws && ws.readyState === WebSocket.OPEN) {
                ws.send(JSON.stringify({type: 'location', data: {lat: e.latlng.lat, lng: e.latlng.lng}}));
            }
        });

        connect();
    </script>
</body>
</html>'''


class DebugServer:
    """HTTP and WebSocket server for the debug GUI"""

    def __init__(self, http_port: Optional[int] = None, ws_port: Optional[int] = None,
                 open_browser: bool = True):
        self.http_port = http_port or CONFIG["debug_http_port"]
        self.ws_port = ws_port or CONFIG["debug_ws_port"]
        self.open_browser = open_browser
        self.location_queue: queue.Queue = queue.Queue()
        self.http_thread = None
        self.ws_thread = None
        self.ws_loop = None
        self.connected_clients: set = set()
        self.route: Optional[Route] = None
        self._running = False

    def start(self):
        """Start HTTP and WebSocket servers in background threads"""
        self._running = True

        self.http_thread = threading.Thread(target=self._run_http_server, daemon=True)
        self.http_thread.start()

        self.ws_thread = threading.Thread(target=self._run_ws_server, daemon=True)
        self.ws_thread.start()

        # Give servers time to start
        time.sleep(0.5)

        url = f"http://localhost:{self.http_port}"
        print(f"Debug GUI available at: {url}")
        if self.open_browser:
            webbrowser.open(url)

    def _run_http_server(self):
        """Run the HTTP server for serving the GUI"""
        handler = partial(_DebugHTTPHandler, self.ws_port)
        socketserver.TCPServer.allow_reuse_address = True
        with socketserver.TCPServer(("", self.http_port), handler) as httpd:
            httpd.timeout = 0.5
            while self._running:
                httpd.handle_request()

    def _handle_message(self, message: str):
        """Turn a map click from the browser into a queued Position"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            return
        if data.get("type") != "location":
            return
        loc = data.get("data", {})
        if "lat" not in loc or "lng" not in loc:
            return
        self.location_queue.put(Position(
            lat=loc["lat"],
            lng=loc["lng"],
            accuracy=0,
            timestamp_ms=time.time() * 1000,
        ))

    def _run_ws_server(self):
        """Run the WebSocket server"""
        self.ws_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.ws_loop)

        async def handler(websocket):
            self.connected_clients.add(websocket)
            try:
                if self.route is not None:
                    await websocket.send(json.dumps({"type": "route", "data": self.route.to_dict()}))
                async for message in websocket:
                    self._handle_message(message)
            finally:
                self.connected_clients.discard(websocket)

        async def main():
            try:
                import websockets
                async with websockets.serve(handler, "localhost", self.ws_port):
                    while self._running:
                        await asyncio.sleep(0.1)
            except Exception as e:
                print(f"WebSocket server error: {e}")

        self.ws_loop.run_until_complete(main())

    def _send_message(self, msg_type: str, data: dict):
        """Send a message to all connected WebSocket clients"""
        if not self.connected_clients or not self.ws_loop:
            return

        message = json.dumps({"type": msg_type, "data": data})

        async def send_to_all():
            for client in list(self.connected_clients):
                try:
                    await client.send(message)
                except Exception:
                    self.connected_clients.discard(client)

        asyncio.run_coroutine_threadsafe(send_to_all(), self.ws_loop)

    def send_route(self, route: Route):
        """Send route to browser for display; remembered for late-joining browsers"""
        self.route = route
        self._send_message("route", route.to_dict())

    def send_update(self, update: NavigationUpdate):
        """Session subscriber: forward state and events to the browser"""
        self._send_message("update", update.to_dict())

    def send_log(self, message: str, data: Optional[dict] = None):
        """Send log message to browser"""
        self._send_message("log", {"message": message, "data": data})

    def get_clicked_location(self, timeout: float = 30) -> Optional[Position]:
        """Block until user clicks on map, return Position"""
        try:
            return self.location_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self):
        """Stop the servers"""
        self._running = False


class _DebugHTTPHandler(http.server.SimpleHTTPRequestHandler):
    """HTTP handler that serves the debug GUI"""

    def __init__(self, ws_port: int, *args, **kwargs):
        self.ws_port = ws_port
        super().__init__(*args, **kwargs)

    def do_GET(self):
        if self.path == '/' or self.path == '/index.html':
            self.send_response(200)
            self.send_header('Content-type', 'text/html')
            self.end_headers()
            html = DEBUG_GUI_HTML.replace('{{WS_PORT}}', str(self.ws_port))
            self.wfile.write(html.encode())
        else:
            self.send_error(404)

    def log_message(self, format, *args):
        pass  # Suppress HTTP log messages


class WebSocketGPS:
    """Position source fed by map clicks in the debug GUI"""

    def __init__(self, debug_server: DebugServer, poll_timeout: float = 0.5):
        self.server = debug_server
        self.poll_timeout = poll_timeout
        self.last_position: Optional[Position] = None
        self._stop_event: Optional[threading.Event] = None

    def subscribe(self, on_position: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        stop = threading.Event()
        self._stop_event = stop

        def pump():
            while not stop.is_set():
                position = self.server.get_clicked_location(timeout=self.poll_timeout)
                if position and not stop.is_set():
                    self.last_position = position
                    on_position(position)

        threading.Thread(target=pump, daemon=True).start()
        return stop.set

    def get_status(self) -> str:
        return "Debug GUI (click map to set location)"
