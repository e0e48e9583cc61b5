import html
import socketserver
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from common.config import LEADER_PORT, REDIRECT_BIND


class RedirectHandler(BaseHTTPRequestHandler):
    """Answers every method and path with 302 to the leader."""

    # set per server in RedirectResponder.start()
    location = "/"
    log = None

    def __getattr__(self, name):
        # BaseHTTPRequestHandler dispatches to do_<METHOD>
        if name.startswith("do_"):
            return self._redirect
        raise AttributeError(name)

    def _redirect(self):
        link = html.escape(self.location, quote=True)
        body = (
            "<html><head><title>Moved</title></head><body>"
            f'<p>The leader is at <a href="{link}">{link}</a>.</p>'
            "</body></html>\n"
        ).encode("utf-8")

        self.close_connection = True
        self.send_response(302, "Found")
        self.send_header("Location", self.location)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def log_message(self, format, *args):
        if self.log is not None:
            self.log.info("REDIRECT_REQUEST", client=self.client_address, request=format % args)


class _RedirectServer(HTTPServer):
    def server_bind(self):
        # skip HTTPServer's getfqdn() lookup
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = host
        self.server_port = port


class RedirectResponder:
    """
    Plain HTTP listener on the conventional leader port, used by followers.
    If the port is taken (a real leader runs here) it quietly does nothing.
    """

    def __init__(self, leader_host: str, leader_port: int, log, self_address=None, bind_host=REDIRECT_BIND, bind_port=LEADER_PORT):
        self.leader = (leader_host, leader_port)
        self.self_address = tuple(self_address) if self_address else None
        self.bind = (bind_host, bind_port)
        self.log = log
        self.location = f"http://{leader_host}:{leader_port}/"
        self._server = None
        self._thread = None

    @property
    def address(self):
        if self._server is None:
            return None
        return self._server.server_address

    def start(self) -> bool:
        if self.self_address == self.leader:
            # we are the leader candidate ourselves
            self.log.info("REDIRECT_NOT_NEEDED", leader=self.leader)
            return False

        handler = type("BoundRedirectHandler", (RedirectHandler,), {"location": self.location, "log": self.log})
        try:
            self._server = _RedirectServer(self.bind, handler)
        except OSError as e:
            self.log.info("REDIRECT_BIND_SKIPPED", addr=self.bind, error=e)
            return False

        self._thread = threading.Thread(target=self._server.serve_forever, name="redirect-http", daemon=True)
        self._thread.start()
        self.log.ok("REDIRECT_START", addr=self.address, location=self.location)
        return True

    def stop(self):
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._thread.join()
        self._server = None
