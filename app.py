"""
Local launcher: starts the API and acts as the external scheduler,
calling POST /api/alerts/evaluate at the cadence the engine recommends.
"""

import atexit
import os
import signal
import subprocess
import sys
import time

import requests

BASE_URL = os.environ.get("ALERT_API_URL", "http://localhost:8000")
FALLBACK_POLL_SECONDS = 60

_processes = []


class AlertClient:
    """Minimal client for the alerts API"""

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url.rstrip('/')
        self.session = requests.Session()

    def _post(self, endpoint: str, data: dict = None) -> dict:
        try:
            resp = self.session.post(f"{self.base_url}{endpoint}", json=data, timeout=30)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.ConnectionError:
            return {"error": "Backend not connected"}
        except requests.exceptions.RequestException as e:
            return {"error": str(e)}

    def health(self) -> dict:
        try:
            resp = self.session.get(f"{self.base_url}/health", timeout=5)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.RequestException as e:
            return {"error": str(e)}

    def is_connected(self) -> bool:
        return "error" not in self.health()

    def evaluate(self, alert_ids: list = None) -> dict:
        return self._post("/api/alerts/evaluate", {"alert_ids": alert_ids} if alert_ids else None)


def cleanup():
    for proc in _processes:
        if proc.poll() is None:
            if sys.platform == "win32":
                subprocess.run(
                    ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
                    capture_output=True
                )
            else:
                try:
                    os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
                except ProcessLookupError:
                    pass


def signal_handler(signum, frame):
    print("\n\nShutting down...")
    cleanup()
    sys.exit(0)


def wait_for_backend(client: AlertClient, attempts: int = 30) -> bool:
    for _ in range(attempts):
        if client.is_connected():
            return True
        time.sleep(1)
    return False


def main():
    print("\nStarting Market Alert Engine...\n")

    atexit.register(cleanup)
    signal.signal(signal.SIGINT, signal_handler)
    if sys.platform != "win32":
        signal.signal(signal.SIGTERM, signal_handler)

    root = os.path.dirname(os.path.abspath(__file__))
    backend_dir = os.path.join(root, "backend")

    print("Starting backend...")
    backend = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "main:app", "--port", "8000"],
        cwd=backend_dir,
        start_new_session=sys.platform != "win32",
    )
    _processes.append(backend)

    client = AlertClient()
    if not wait_for_backend(client):
        print("Backend did not come up")
        cleanup()
        sys.exit(1)

    print(f"\nBackend: {BASE_URL}/docs")
    print("Press Ctrl+C to stop\n")

    try:
        while backend.poll() is None:
            result = client.evaluate()
            if "error" in result:
                print(f"Sweep failed: {result['error']}")
                delay = FALLBACK_POLL_SECONDS
            else:
                print(
                    f"Sweep: {result['evaluated_count']} evaluated, "
                    f"{len(result['events'])} event(s)"
                )
                delay = result.get("recommended_next_poll_seconds", FALLBACK_POLL_SECONDS)
            time.sleep(delay)
        print("Backend stopped unexpectedly")
    except KeyboardInterrupt:
        pass
    finally:
        cleanup()


if __name__ == "__main__":
    main()
