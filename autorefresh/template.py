"""Browser half of the reload protocol.

SCRIPT is the immutable Jinja2 source of the agent. It walks the same
transition table as ``autorefresh.agent``; keep the two in step.
"""
from __future__ import annotations

import logging

from jinja2 import Environment, Template, TemplateSyntaxError

from .errors import TemplateParsingError

logger = logging.getLogger(__name__)

# Marker used to detect pages that already carry the script.
SCRIPT_MARKER = "setupAutorefresh"

SCRIPT = """
<script>
	function setupAutorefresh(reload = false) {
		const path = {{ path|tojson }};
		const refreshRate = {{ refresh_rate }};
		const transitions = {
			"connecting:opened": (s) => s.reloadOnNextConnect
				? [{ phase: "reloading", reloadOnNextConnect: true }, "reload"]
				: [{ phase: "open", reloadOnNextConnect: true }, "none"],
			"connecting:error": (s) => [{ ...s, phase: "retrying" }, "schedule_retry"],
			"connecting:closed": (s) => [{ ...s, phase: "retrying" }, "schedule_retry"],
			"open:error": (s) => [{ ...s, phase: "retrying" }, "schedule_retry"],
			"open:closed": (s) => [{ ...s, phase: "retrying" }, "schedule_retry"],
			"retrying:error": (s) => [s, "none"],
			"retrying:closed": (s) => [s, "none"],
			"retrying:retry_elapsed": (s) => [{ ...s, phase: "connecting" }, "connect"],
			"reloading:error": (s) => [s, "none"],
			"reloading:closed": (s) => [s, "none"],
		};
		let state = { phase: "connecting", reloadOnNextConnect: reload };
		let socket = null;

		function endpointUrl() {
			const url = new URL(path, window.location.href);
			if (url.protocol === "http:") {
				url.protocol = "ws:";
			} else if (url.protocol === "https:") {
				url.protocol = "wss:";
			}
			return url.href;
		}

		function dispatch(event) {
			const step = transitions[state.phase + ":" + event];
			if (step === undefined) {
				return;
			}
			const [next, effect] = step(state);
			state = next;
			if (effect === "reload") {
				window.location.reload();
			} else if (effect === "schedule_retry") {
				setTimeout(() => dispatch("retry_elapsed"), refreshRate);
			} else if (effect === "connect") {
				connect();
			}
		}

		function connect() {
			const current = new WebSocket(endpointUrl());
			socket = current;
			current.onopen = () => socket === current && dispatch("opened");
			current.onerror = () => socket === current && dispatch("error");
			current.onclose = () => socket === current && dispatch("closed");
		}

		connect();
	}
	setupAutorefresh();
</script>
"""


def compile_script(environment: Environment, path: str, refresh_rate: int) -> Template:
    """Compile SCRIPT in *environment* with the endpoint parameters bound.

    The parameters are template globals of the compiled template only;
    *environment* itself is left untouched.
    """
    try:
        return environment.from_string(
            SCRIPT,
            globals={"path": path, "refresh_rate": refresh_rate},
        )
    except TemplateSyntaxError as exc:
        logger.error("Failed to compile reload script: %s", exc)
        raise TemplateParsingError(exc) from exc


def inject_fragment(html: str, fragment: str) -> str:
    """Place *fragment* before ``</body>``, else ``</head>``, else at the end."""
    if SCRIPT_MARKER in html:
        return html
    lowered = html.lower()
    for tag in ("</body>", "</head>"):
        idx = lowered.rfind(tag)
        if idx != -1:
            return html[:idx] + fragment + html[idx:]
    return html + fragment
