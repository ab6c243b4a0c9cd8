"""
USB Tree - FastAPI report server.

Serves the HTML report for a fresh scan on every request, plus the same data
as plain text and JSON.
"""

from __future__ import annotations
import logging
import os
import signal
from typing import Callable

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from .errors import UsbTreeError
from .models import TopologyAnalysis
from .render import render_html, render_text_report

logger = logging.getLogger(__name__)

ScanFn = Callable[[], TopologyAnalysis]


def create_app(scan: ScanFn) -> FastAPI:
    """Create the app; scan() is called once per request.

    Routes that scan are plain functions so FastAPI runs them in its
    threadpool; the listing commands block for up to command_timeout.
    """
    from . import __version__

    app = FastAPI(
        title="USB Tree",
        description="USB topology hop depth and per-platform stability report",
        version=__version__,
    )

    def run_scan() -> TopologyAnalysis:
        try:
            return scan()
        except UsbTreeError as e:
            logger.warning(f"Scan failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))

    @app.get("/", response_class=HTMLResponse)
    def index():
        """Serve the HTML report."""
        return HTMLResponse(render_html(run_scan()))

    @app.get("/report.txt", response_class=PlainTextResponse)
    def text_report():
        """Serve the plain-text report."""
        return PlainTextResponse(render_text_report(run_scan()))

    @app.get("/api/report")
    def get_report():
        """Get the stability report and tree as JSON."""
        return JSONResponse(run_scan().model_dump_for_frontend())

    @app.get("/api/tree")
    def get_tree():
        """Get only the parsed device tree."""
        return JSONResponse(run_scan().tree.model_dump(mode="json"))

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return JSONResponse({"status": "healthy"})

    @app.post("/api/shutdown")
    async def shutdown():
        """Shutdown the server."""
        logger.info("Shutdown requested via API")
        os.kill(os.getpid(), signal.SIGTERM)
        return JSONResponse({"status": "shutting_down"})

    return app


def run_server(scan: ScanFn, host: str = "127.0.0.1", port: int = 8080, open_browser: bool = True):
    """Run the server."""
    import uvicorn

    if open_browser:
        # Open browser after short delay
        def open_browser_delayed():
            import time
            import webbrowser
            time.sleep(1.5)
            webbrowser.open(f"http://localhost:{port}")

        import threading
        threading.Thread(target=open_browser_delayed, daemon=True).start()

    logger.info(f"Serving USB tree report on http://{host}:{port}")
    uvicorn.run(create_app(scan), host=host, port=port, log_level="info")
