"""HTML rendering for the relay home page and the note form responses.

The home page is a single static template. Responses to ``POST
/submit-note`` are small fragments swapped into the page by htmx.
Every interpolated value is HTML-escaped.
"""

from __future__ import annotations

from collections.abc import Iterable
from html import escape
from string import Template


_HOME_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>$name</title>
    <script src="https://unpkg.com/htmx.org@1.9.2"></script>
    <style>
        body { font-family: 'Inter', sans-serif; background-color: #1a1a1a; color: #e0e0e0; line-height: 1.6; }
        .container { max-width: 600px; margin: 0 auto; padding: 2rem; display: flex; flex-direction: column; align-items: center; }
        .card { background-color: #2a2a2a; border-radius: 0.5rem; padding: 1.5rem; margin-bottom: 1.5rem; width: 100%; }
        .input, .button { width: 90%; padding: 0.75rem; margin-bottom: 1rem; border-radius: 0.25rem; background-color: #3a3a3a; border: 1px solid #4a4a4a; color: #e0e0e0; }
        .button { background-color: #4a4aff; color: white; font-weight: bold; cursor: pointer; }
        .success { color: #4ade80; }
        .error { color: #f87171; }
        .warning { color: #fbbf24; }
    </style>
</head>
<body>
    <div class="container">
        <h1>$name</h1>
        <div class="card">
            <h2>Relay Information</h2>
            <p>$description</p>
            <p><strong>Allowed event kinds:</strong> $kinds</p>
            <p>$access</p>
            <p><strong>Connect to this relay using:</strong> <code>$ws_url</code></p>
        </div>
$form
    </div>
</body>
</html>
"""
)

_FORM = """        <div class="card">
            <h2>Submit a Note</h2>
            <form hx-post="/submit-note" hx-target="#result">
                <textarea name="content" placeholder="Enter your note content" class="input" rows="4"></textarea>
                <button type="submit" class="button">Submit Note</button>
            </form>
            <div id="result"></div>
        </div>"""


def render_home(
    *,
    name: str,
    description: str,
    allowed_kinds: Iterable[int],
    whitelist_enabled: bool,
    host: str,
) -> str:
    """Render the relay home page. The note form only appears on open relays."""
    if whitelist_enabled:
        access = "This relay uses a whitelist for pubkeys."
    else:
        access = "This relay is open to all pubkeys."
    return _HOME_TEMPLATE.substitute(
        name=escape(name),
        description=escape(description),
        kinds=escape(", ".join(str(k) for k in sorted(allowed_kinds))),
        access=access,
        ws_url=escape(f"ws://{host}/"),
        form="" if whitelist_enabled else _FORM,
    )


def render_error(message: str) -> str:
    return f'<p class="error">{escape(message)}</p>'


def render_submission_success(rebroadcast_errors: Iterable[str]) -> str:
    """Success fragment, followed by one warning item per failed peer."""
    fragment = '<p class="success">Note submitted successfully!</p>'
    errors = list(rebroadcast_errors)
    if errors:
        items = "".join(f'<li class="warning">{escape(e)}</li>' for e in errors)
        fragment += f'<p class="warning">Rebroadcast issues:</p><ul>{items}</ul>'
    return fragment
