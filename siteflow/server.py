"""Preview server for the develop loop.

Serves the source tree with live reload and sane defaults for local authoring:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Runs a websocket endpoint whose connections are owned by the Broadcaster.

The injected script reloads the page on a full reload signal and, for an
asset signal, swaps matching stylesheet links in place with a cache-busting
query so the page keeps its state.

Key classes:
- PreviewServer: HTTP server thread plus websocket server on the event loop.
- _ReloadHandler: HTTP request handler that injects the reload script and enforces 404s.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets

from .broadcaster import Broadcaster
from .config import ServerOptions
from .errors import CollaboratorError

logger = logging.getLogger(__name__)

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
  ws.onmessage = (event) => {{
    const data = JSON.parse(event.data || '{{}}');
    if (data.type === 'reload') {{
      location.reload();
    }} else if (data.type === 'asset') {{
      let swapped = false;
      document.querySelectorAll('link[rel="stylesheet"]').forEach((link) => {{
        const url = new URL(link.href, location.href);
        if (url.pathname === data.path) {{
          url.searchParams.set('_siteflow', Date.now());
          link.href = url.toString();
          swapped = true;
        }}
      }});
      if (!swapped) location.reload();
    }}
  }};
}})();
</script>
"""


def inject_reload_script(content: str, script: str) -> str:
    """Insert the reload script before </body>, or append it."""
    if "</body>" in content:
        return content.replace("</body>", f"{script}</body>", 1)
    return content + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects the live reload script into HTML pages.

    Attributes:
        reload_script: Client script connecting to the websocket endpoint.
    """

    reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=3001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _send_html(self, status: int, content: str) -> None:
        encoded = inject_reload_script(content, self.reload_script).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8", errors="replace"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8", errors="replace"))
            return None
        return super().send_head()


class PreviewServer:
    """Static preview server with a live reload websocket.

    Attributes:
        root: Directory served over HTTP.
        options: Host and port settings.
        broadcaster: Owner of the websocket client set.
    """

    def __init__(self, root: Path, options: ServerOptions, broadcaster: Broadcaster):
        self.root = root
        self.options = options
        self.broadcaster = broadcaster
        self.http_port = options.port
        self.ws_port = options.websocket_port
        self._reload_script = RELOAD_SCRIPT_TEMPLATE.format(ws_port=self.ws_port)
        self._httpd: ThreadingHTTPServer | None = None

    def handler_class(self) -> type[_ReloadHandler]:
        return type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )

    def start_http(self) -> None:  # pragma: no cover - integration path
        handler = functools.partial(self.handler_class(), directory=str(self.root))
        self._httpd = ThreadingHTTPServer((self.options.host, self.http_port), handler)
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        logger.info("Serving %s at http://%s:%d", self.root, self.options.host, self.http_port)

    def stop_http(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None

    async def serve(self) -> None:  # pragma: no cover - integration path
        """Serve HTTP and websockets until cancelled.

        Raises:
            CollaboratorError: If either port cannot be bound.
        """
        try:
            self.start_http()
        except OSError as exc:
            raise CollaboratorError(
                f"Preview server failed to start (port {self.http_port}): {exc}", original_error=exc
            ) from exc
        try:
            try:
                server = await websockets.serve(self.broadcaster.handler, self.options.host, self.ws_port)
            except OSError as exc:
                raise CollaboratorError(
                    f"Live reload server failed to start (port {self.ws_port}): {exc}", original_error=exc
                ) from exc
            async with server:
                logger.info("Live reload listening on ws://%s:%d", self.options.host, self.ws_port)
                await asyncio.Future()
        finally:
            await asyncio.to_thread(self.stop_http)
