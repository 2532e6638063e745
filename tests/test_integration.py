"""
Integration tests against a live uvicorn server.

Concurrent uploads go over real sockets so several requests are in flight
at once and land in the same second.
"""

import os
import shutil
import socket
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from threading import Thread

import pytest
import requests
import uvicorn

from upload_server.app import UploadServer
from upload_server.config import ServerConfig
from upload_server.writer import TEMP_PREFIX


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="module")
def live_server():
    """
    Run the app in a background thread for the whole module.
    """
    temp_dir = tempfile.mkdtemp(prefix="upload_server_test_")
    port = free_port()
    server = UploadServer(ServerConfig(
        uploads_dir=temp_dir,
        host="127.0.0.1",
        port=port,
        save_meta=True,
        log_level="ERROR",
    ))
    config = uvicorn.Config(
        server.create_app(),
        host="127.0.0.1",
        port=port,
        log_level="error",
        access_log=False,
    )
    uvicorn_server = uvicorn.Server(config)
    thread = Thread(target=uvicorn_server.run, daemon=True)
    thread.start()

    deadline = time.time() + 10
    while not uvicorn_server.started:
        if time.time() > deadline:
            raise RuntimeError("uvicorn did not start")
        time.sleep(0.05)

    yield {
        "url": f"http://127.0.0.1:{port}",
        "port": port,
        "upload_dir": temp_dir,
    }

    uvicorn_server.should_exit = True
    thread.join(timeout=5)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clean_dir(live_server):
    upload_dir = live_server["upload_dir"]
    for name in os.listdir(upload_dir):
        os.unlink(os.path.join(upload_dir, name))
    return upload_dir


def payloads(upload_dir):
    return sorted(
        name for name in os.listdir(upload_dir) if name.endswith("--payload")
    )


def send_partial(port, content_type, body, declared_length):
    """Send a request whose body stops short of its Content-Length, then hang up."""
    head = (
        "POST / HTTP/1.1\r\n"
        f"Host: 127.0.0.1:{port}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {declared_length}\r\n"
        "\r\n"
    )
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(head.encode() + body)
        time.sleep(0.2)


class TestLiveServer:

    def test_home_page(self, live_server):
        response = requests.get(live_server["url"] + "/", timeout=5)

        assert response.status_code == 200
        assert "upload-server" in response.text

    def test_text_upload(self, live_server, clean_dir):
        response = requests.post(
            live_server["url"] + "/",
            data=b"hello world",
            headers={"Content-Type": "text/plain"},
            timeout=5,
        )

        assert response.status_code == 200
        names = payloads(clean_dir)
        assert len(names) == 1
        assert names[0].endswith("--text--payload")
        assert Path(clean_dir, names[0]).read_bytes() == b"hello world"

    def test_concurrent_same_name_uploads(self, live_server, clean_dir):
        contents = [os.urandom(32 * 1024) + bytes([i]) for i in range(16)]

        def upload(content):
            return requests.post(
                live_server["url"] + "/",
                files={"file": ("same.bin", content, "application/octet-stream")},
                timeout=10,
            )

        with ThreadPoolExecutor(max_workers=8) as pool:
            responses = list(pool.map(upload, contents))

        assert all(r.status_code == 200 for r in responses)

        names = payloads(clean_dir)
        assert len(names) == len(contents)
        assert all(name.endswith("--same.bin--payload") for name in names)
        stored = sorted(Path(clean_dir, name).read_bytes() for name in names)
        assert stored == sorted(contents)

        metas = [name for name in os.listdir(clean_dir) if name.endswith("--meta")]
        assert len(metas) == len(contents)
        assert not any(name.startswith(".") for name in os.listdir(clean_dir))

    def test_bad_request_does_not_stop_server(self, live_server, clean_dir):
        bad = requests.post(
            live_server["url"] + "/",
            data=b"garbage",
            headers={"Content-Type": "multipart/form-data; boundary=xyz"},
            timeout=5,
        )
        assert bad.status_code == 400

        good = requests.post(
            live_server["url"] + "/file",
            files={"file": ("after.txt", b"still alive")},
            timeout=5,
        )
        assert good.status_code == 200
        assert payloads(clean_dir)[0].endswith("--after.txt--payload")

    def test_client_disconnect_leaves_nothing(self, live_server, clean_dir):
        port = live_server["port"]
        send_partial(port, "text/plain", b"only the first half", 4096)
        send_partial(
            port,
            "multipart/form-data; boundary=cutoff",
            b"--cutoff\r\n"
            b'Content-Disposition: form-data; name="file"; filename="half.bin"\r\n'
            b"\r\n" + b"\x01" * 512,
            4096,
        )
        time.sleep(0.5)

        # The server is still up and the aborted bodies left no trace
        good = requests.post(
            live_server["url"] + "/",
            data=b"complete",
            headers={"Content-Type": "text/plain"},
            timeout=5,
        )
        assert good.status_code == 200

        assert not any(name.startswith(TEMP_PREFIX) for name in os.listdir(clean_dir))
        stored = payloads(clean_dir)
        assert len(stored) == 1
        assert stored[0].endswith("--text--payload")
        assert Path(clean_dir, stored[0]).read_bytes() == b"complete"
