"""
T20 League - Main Entry Point
Runs the FastAPI backend
"""

import os
import signal
import subprocess
import sys


def main():
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    port = os.environ.get("PORT", "8000")
    api_proc = subprocess.Popen([
        sys.executable, "-m", "uvicorn", "api.main:app",
        "--host=0.0.0.0", f"--port={port}",
        "--log-level=warning",
    ])

    def shutdown(signum, frame):
        api_proc.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    try:
        api_proc.wait()
    except KeyboardInterrupt:
        pass
    finally:
        api_proc.terminate()


if __name__ == "__main__":
    main()
