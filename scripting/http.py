import logging
import queue
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60


def perform_request(method: str, url: str, headers: Dict[str, str] | None = None,
                    body: str | None = None) -> Dict[str, Any]:
    """
    Send one HTTP request and return a plain-dict response.

    Returns:
        dict: {"status_code": int, "body": str, "headers": {name: value}}

    Raises:
        requests.RequestException: On transport failures or malformed URLs.
    """
    resp = requests.request(
        (method or "GET").upper(),
        url,
        headers=headers or {},
        data=(body or "").encode("utf-8"),
        timeout=REQUEST_TIMEOUT,
    )
    return {
        "status_code": resp.status_code,
        "body": resp.text,
        "headers": dict(resp.headers),
    }


def fetch_script(source: str) -> str:
    """
    Load script text from an http(s) URL or a local file path.

    Raises:
        OSError: If the local file cannot be read.
        UnicodeDecodeError: If the local file is not valid UTF-8.
        requests.RequestException: If the URL cannot be fetched.
    """
    if source.startswith(("http://", "https://")):
        resp = requests.get(source, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.text
    return Path(source).read_text(encoding="utf-8")


Completion = Tuple[int, bool, Any]


class CompletionQueue:
    """
    Hands results of background work back to the interpreter thread.

    Worker threads only ever see a ticket number and plain Python data; the
    interpreter thread pulls (ticket, ok, payload) tuples off the queue at
    its own yield points.
    """

    def __init__(self):
        self._queue: "queue.Queue[Completion]" = queue.Queue()
        self._lock = threading.Lock()
        self.outstanding = 0

    def submit(self, ticket: int, fn: Callable[..., Any], *args) -> threading.Thread:
        with self._lock:
            self.outstanding += 1
        worker = threading.Thread(target=self._run, args=(ticket, fn, args),
                                  name=f"tip-async-{ticket}", daemon=True)
        worker.start()
        return worker

    def _run(self, ticket: int, fn: Callable[..., Any], args: tuple):
        try:
            payload = fn(*args)
            ok = True
        except requests.RequestException as e:
            payload = str(e)
            ok = False
        except Exception as e:
            logger.exception("async task %d failed", ticket)
            payload = str(e)
            ok = False
        self._queue.put((ticket, ok, payload))

    def get(self, timeout: float = 0.0) -> Completion | None:
        """Wait up to `timeout` seconds for one completion."""
        try:
            completion = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        with self._lock:
            self.outstanding -= 1
        return completion
