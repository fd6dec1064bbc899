"""WebSocket front end: accepts connections and feeds them to the relay."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response
from websockets.sync.server import Server, ServerConnection, serve

from .transport import WebSocketTransport

if TYPE_CHECKING:
    from .service import RelayService


log = logging.getLogger("sigrelay.server")


def is_websocket_request(headers: Headers, path: str, ws_path: str | None) -> bool:
    """True if the request should go through the WebSocket handshake.

    Anything else gets the plain-text health response.
    """
    upgrades = [v.strip().lower() for v in headers.get_all("Upgrade")]
    if "websocket" not in upgrades:
        return False
    if ws_path is None:
        return True
    return path.split("?", 1)[0] == ws_path


def build_server(hub: RelayService) -> Server:
    cfg = hub.config

    def process_request(connection: ServerConnection, request: Request) -> Response | None:
        if is_websocket_request(request.headers, request.path, cfg.ws_path):
            return None
        hub.stats_manager.inc("health_requests")
        return connection.respond(HTTPStatus.OK, f"{cfg.health_text}\n")

    def handler(ws: ServerConnection) -> None:
        transport = WebSocketTransport(ws, queue_max=cfg.send_queue_max)
        conn_id = hub.on_connect(transport)
        try:
            for data in ws:
                hub.on_message(conn_id, data)
        except ConnectionClosed as e:
            log.debug("Connection dropped conn=%s err=%s", conn_id, e)
        except Exception:
            log.exception("Connection handler failed conn=%s", conn_id)
            transport.close()
        finally:
            hub.on_close(conn_id)

    # Liveness is owned by HeartbeatSupervisor; turn off the library keepalive.
    return serve(
        handler,
        cfg.host,
        cfg.port,
        process_request=process_request,
        max_size=cfg.max_frame_bytes,
        ping_interval=None,
        ping_timeout=None,
    )
