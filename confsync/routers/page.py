"""GET / — ball page that follows the live configuration."""

from __future__ import annotations

import html
import random

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from confsync.schemas import BallConfig, ball_color_for

router = APIRouter()

_DEFAULT_BALL_SIZE_PX = 30

_BALL_TEMPLATE = (
    "<div class='ball' style='width: {size}px; height: {size}px; "
    "border-radius: {radius}px; background-color: {color}; "
    "left: {left}%; top: {top}%;'></div>"
)

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>Balls Color</title>
    <style>
        body {{ margin: 0; overflow: hidden; }}
        .ball {{ position: absolute; transition: left 0.8s, top 0.8s; }}
    </style>
</head>
<body>
    {balls}
    <script>
        var scheme = location.protocol === 'https:' ? 'wss://' : 'ws://';
        var conn = new WebSocket(scheme + location.host + '{ws_path}');
        conn.onopen = function() {{
            console.log('WebSocket connection established');
        }};
        conn.onerror = function(error) {{
            console.error('WebSocket Error:', error);
        }};
        conn.onmessage = function(evt) {{
            var config = JSON.parse(evt.data);
            console.log('Received config:', config);
            if (config.error) {{
                return;
            }}
            var color = config.ball_color || (config.feature_flag ? 'green' : 'blue');
            document.querySelectorAll('.ball').forEach(function(div) {{
                div.style.backgroundColor = color;
                if (config.ball_size) {{
                    div.style.width = config.ball_size + 'px';
                    div.style.height = config.ball_size + 'px';
                    div.style.borderRadius = (config.ball_size / 2) + 'px';
                }}
            }});
        }};
        conn.onclose = function() {{
            console.log('WebSocket connection closed');
        }};

        function moveBalls() {{
            document.querySelectorAll('.ball').forEach(function(div) {{
                div.style.left = Math.floor(Math.random() * window.innerWidth) + 'px';
                div.style.top = Math.floor(Math.random() * window.innerHeight) + 'px';
            }});
        }}
        setInterval(moveBalls, 1000);
    </script>
</body>
</html>
"""


def render_page(config, ball_count: int, ws_path: str = "/ws/") -> str:
    color = html.escape(ball_color_for(config), quote=True)
    size = config.ball_size if isinstance(config, BallConfig) else _DEFAULT_BALL_SIZE_PX
    balls = "\n    ".join(
        _BALL_TEMPLATE.format(
            size=size,
            radius=size // 2,
            color=color,
            left=random.randrange(100),
            top=random.randrange(100),
        )
        for _ in range(ball_count)
    )
    return _PAGE_TEMPLATE.format(balls=balls, ws_path=ws_path)


@router.get("/", response_class=HTMLResponse)
async def display_balls(request: Request) -> HTMLResponse:
    state = request.app.state
    body = render_page(state.shared_config.read(), state.settings.page_ball_count)
    return HTMLResponse(body)
