"""Post finished recordings as a comment on a GitHub issue or pull request."""

import logging
import re

import httpx

from runthru.config import PublishConfig
from runthru.errors import PublishError
from runthru.models.recording import Recording

logger = logging.getLogger(__name__)

_TARGET_RE = re.compile(r"^(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)#(?P<number>\d+)$")


def parse_target(target: str) -> tuple[str, str, int]:
    """``"owner/repo#123"`` -> ``("owner", "repo", 123)``."""
    match = _TARGET_RE.match(target.strip())
    if not match:
        raise PublishError(f"Invalid GitHub target {target!r}; expected owner/repo#number")
    return match["owner"], match["repo"], int(match["number"])


def render_comment(recording: Recording) -> str:
    """Markdown summary of a recording."""
    passed = sum(1 for step in recording.steps if step.success)
    lines = [
        f"## Demo recording: {recording.title}",
        "",
        recording.description or "",
        "",
        f"- Target: {recording.target_url}",
        f"- Steps: {passed}/{len(recording.steps)} succeeded",
    ]
    if recording.duration is not None:
        lines.append(f"- Duration: {recording.duration}s")
    if recording.final_video_path:
        lines.append(f"- Video: `{recording.final_video_path}`")
    lines += ["", "| # | Step | Result |", "|---|---|---|"]
    for step in recording.steps:
        result = "ok" if step.success else f"failed: {step.error}"
        lines.append(f"| {step.sequence_id} | {step.instruction.replace('|', '/')} | {result} |")
    return "\n".join(lines)


class GitHubPublisher:
    """Posts recording summaries through the GitHub REST API."""

    def __init__(self, config: PublishConfig, client: httpx.AsyncClient):
        self.config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.config.github_token and self.config.github_target)

    async def publish(self, recording: Recording) -> str | None:
        """Comment on the configured issue.

        Returns:
            URL of the new comment, or None when publishing is not configured

        Raises:
            PublishError: if the target is malformed or the API call fails
        """
        if not self.configured:
            return None

        owner, repo, number = parse_target(self.config.github_target)
        url = f"{self.config.api_url.rstrip('/')}/repos/{owner}/{repo}/issues/{number}/comments"
        try:
            resp = await self._client.post(
                url,
                headers={
                    "Authorization": f"Bearer {self.config.github_token}",
                    "Accept": "application/vnd.github+json",
                },
                json={"body": render_comment(recording)},
            )
            resp.raise_for_status()
            comment_url = resp.json().get("html_url")
        except httpx.HTTPError as e:
            raise PublishError(f"GitHub comment failed: {e}") from e
        except ValueError as e:
            raise PublishError(f"Unexpected GitHub response: {e}") from e

        logger.info("Published recording %s to %s/%s#%d", recording.id, owner, repo, number)
        return comment_url
