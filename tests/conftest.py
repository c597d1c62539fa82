import http.client
import os
import socket
import threading

import pytest

import srvplz


# site is a small directory tree to serve, with a file just outside of it that
# must never be reachable.
@pytest.fixture
def site(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>")
    (root / "data.json").write_text('{"a": 1}')
    (root / "blob.unknownext").write_bytes(b"\x00\x01\x02")
    (root / "hello world.txt").write_text("spaces")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>")
    (root / "empty").mkdir()
    (tmp_path / "secret.txt").write_text("top secret")
    return os.path.realpath(str(root))


# server runs the real accept loop on an ephemeral loopback port in a thread,
# and returns a function that makes connections to it.
@pytest.fixture
def server(site):
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(16)
    port = listener.getsockname()[1]
    stop = threading.Event()
    t = threading.Thread(target=srvplz.serve_forever, args=(listener, site, stop))
    t.daemon = True
    t.start()

    def connect():
        return http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    connect.port = port

    yield connect

    stop.set()
    try:
        listener.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    listener.close()
    t.join(timeout=2)
