"""Step progress reporting for release runs."""

import logging
from typing import Any, Dict, Optional

import requests

from tagdeploy.constants import STEP_NAMES

logger = logging.getLogger("tagdeploy")


class ProgressReporter:
    """Receives one call per pipeline stage. The base class ignores them."""

    def report(self, step_index: int, status: Optional[str] = None, message: Optional[str] = None):
        return None


class DiscordStepReporter(ProgressReporter):
    """Keeps a single Discord webhook message in sync with the run's progress."""

    COLOR_RUNNING = 3447003
    COLOR_FAILED = 15158332
    COLOR_DONE = 3066993

    FLAG_COMPONENTS_V2 = 1 << 15
    BLANK_EMOJI = "<:blank:1383946250839396362>"

    def __init__(
        self,
        webhook_url: str,
        repository: str,
        tag: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.webhook_url = webhook_url.rstrip("/")
        self.repository = repository
        self.tag = tag
        self.session = session or requests.Session()
        self.timeout = timeout
        self.message_id: Optional[str] = None

    def render(self, step_index: int, status: Optional[str] = None, message: Optional[str] = None) -> str:
        name = self.repository.split("/")[-1]
        bar = "".join(
            "🟩" if i < step_index else "🟦" if i == step_index else "⬛"
            for i in range(len(STEP_NAMES))
        )
        failed = status == "failed" and 0 <= step_index < len(STEP_NAMES)
        status_line = " ❌ Failed" if failed else ""

        if step_index >= len(STEP_NAMES):
            return f"### {name} {self.tag}\n{bar}\nDone! {status_line}"

        padding = "".join(self.BLANK_EMOJI for i in range(len(STEP_NAMES)) if i < step_index)
        caption = STEP_NAMES[step_index] if 0 <= step_index < len(STEP_NAMES) else ""
        content = (
            f"### {name} {self.tag}\nStep {step_index + 1} / {len(STEP_NAMES)}\n"
            f"{bar}\n{padding}  ^ {caption}{status_line}"
        )
        if message:
            content = f"{content}\nError: {message}"
        return content

    def _payload(self, content: str, status: Optional[str]) -> Dict[str, Any]:
        color = self.COLOR_RUNNING
        if status == "failed":
            color = self.COLOR_FAILED
        elif status == "done":
            color = self.COLOR_DONE
        return {
            "flags": self.FLAG_COMPONENTS_V2,
            "components": [
                {
                    "type": 17,
                    "accent_color": color,
                    "spoiler": False,
                    "components": [{"type": 10, "content": content}],
                }
            ],
        }

    def start(self) -> bool:
        """Posts the initial message; returns False when Discord rejected it."""
        try:
            response = self.session.post(
                f"{self.webhook_url}?wait=true&with_components=true",
                json=self._payload(self.render(-1), None),
                timeout=self.timeout,
            )
            response.raise_for_status()
            self.message_id = response.json().get("id")
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to send Discord log: %s", exc)
            return False
        return self.message_id is not None

    def report(self, step_index: int, status: Optional[str] = None, message: Optional[str] = None):
        if not self.message_id:
            return
        payload = self._payload(self.render(step_index, status, message), status)
        try:
            response = self.session.patch(
                f"{self.webhook_url}/messages/{self.message_id}?wait=true&with_components=true",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Failed to update Discord log: %s", exc)


def create_step_reporter(repository: str, tag: str, webhook_url: Optional[str]) -> ProgressReporter:
    if not webhook_url:
        logger.warning("DISCORD_WEBHOOK_URL not set, skipping Discord log")
        return ProgressReporter()

    reporter = DiscordStepReporter(webhook_url, repository, tag)
    if not reporter.start():
        return ProgressReporter()
    return reporter
