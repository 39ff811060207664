"""
Decoy endpoints.

Ordinary HTTP traffic sees a static server status page at "/" and a
JSON API-style 404 everywhere else.
"""

import time

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

router = APIRouter()

STATUS_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Server Status | Matrix Node</title>
    <style>
        body { background: #000; color: #0f0; font-family: 'Courier New', Courier, monospace; margin: 0; padding: 20px; display: flex; justify-content: center; align-items: center; height: 100vh; overflow: hidden; }
        .monitor { border: 1px solid #333; padding: 40px; width: 600px; box-shadow: 0 0 15px rgba(0, 255, 0, 0.2); background: #0a0a0a; }
        h1 { border-bottom: 1px solid #333; padding-bottom: 10px; margin-top: 0; font-size: 24px; text-transform: uppercase; letter-spacing: 2px; }
        .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; margin-top: 20px; }
        .label { color: #666; font-size: 12px; }
        .value { font-size: 16px; font-weight: bold; }
        .log { margin-top: 30px; height: 150px; overflow: hidden; font-size: 12px; color: #555; border-top: 1px solid #222; padding-top: 10px; }
        .blink { animation: blink 1s infinite; }
        @keyframes blink { 50% { opacity: 0; } }
    </style>
</head>
<body>
    <div class="monitor">
        <h1>System Interface</h1>
        <div class="grid">
            <div><div class="label">STATUS</div><div class="value">ONLINE</div></div>
            <div><div class="label">UPTIME</div><div class="value" id="uptime">00:00:00</div></div>
            <div><div class="label">LOAD</div><div class="value">0.12, 0.08, 0.04</div></div>
            <div><div class="label">MEMORY</div><div class="value">256MB / 2048MB</div></div>
        </div>
        <div class="log">
            &gt; Initializing protocols...<br>
            &gt; Loading kernel modules...<br>
            &gt; Connection established.<br>
            &gt; Waiting for data stream... <span class="blink">_</span>
        </div>
    </div>
    <script>
        let s = 0;
        setInterval(() => {
            s++;
            const h = Math.floor(s / 3600).toString().padStart(2, '0');
            const m = Math.floor((s % 3600) / 60).toString().padStart(2, '0');
            const sec = (s % 60).toString().padStart(2, '0');
            document.getElementById('uptime').innerText = `${h}:${m}:${sec}`;
        }, 1000);
    </script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
async def status_page():
    """Serve the static status page."""
    return STATUS_PAGE_HTML


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer unknown paths like an API would."""
    return JSONResponse(
        status_code=404,
        content={
            "code": 404,
            "message": "Resource not found",
            "timestamp": int(time.time() * 1000),
        },
    )
