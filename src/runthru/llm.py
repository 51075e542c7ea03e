"""Language-model calls: test steps from a description, narration from steps."""

import json
import logging

import httpx

from runthru.config import LLMConfig
from runthru.errors import GenerationError

logger = logging.getLogger(__name__)

STEPS_PROMPT = """You are an expert QA automation engineer. Given the following test description and target URL, generate a step-by-step test plan that browser automation can execute.

Test Description: {description}
Target URL: {target_url}

Respond with a JSON object holding an array of short, actionable steps. Use these phrasings so the steps can be executed:
- "Navigate to <url>"
- "Click '<visible text or CSS selector>'"
- "Type '<text>' in '<field placeholder, name or CSS selector>'"
- "Scroll down <pixels> pixels"
- "Wait <seconds> seconds"
- "Take a screenshot"

Example:
{{"steps": ["Navigate to https://example.com", "Click 'Login'", "Type 'test@example.com' in '#email'", "Wait 2 seconds"]}}"""

NARRATION_PROMPT = """You are writing the narration for a QA demo video. Given these test steps, write a natural script that explains what happens in the test.

Test Steps:
{steps}

Narration Style: {style}

The script should sound conversational, explain the purpose of each action, flow from one step to the next, and suit stakeholders and team members. Provide only the narration text, no formatting or stage directions."""


def fallback_steps(description: str, target_url: str) -> list[str]:
    """Generic plan used when the language model is unavailable."""
    return [
        f"Navigate to {target_url}",
        "Wait 2 seconds",
        "Take a screenshot",
        "Scroll down 500 pixels",
        "Wait 2 seconds",
        "Take a screenshot",
    ]


def fallback_narration(title: str, steps: list[str]) -> str:
    """Plain narration used when the language model is unavailable."""
    return (
        f"This is a demonstration of {title}. "
        f"The test runs {len(steps)} automated steps against the target application. "
        + " ".join(f"Step {i}: {step.rstrip('.')}." for i, step in enumerate(steps, 1))
    )


class InstructionGenerator:
    """Chat-completions client for step plans and narration scripts."""

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient):
        self.config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    async def _chat(self, prompt: str, json_mode: bool = False) -> str:
        if not self.configured:
            raise GenerationError("No language model API key configured")

        payload = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            resp = await self._client.post(
                f"{self.config.base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                json=payload,
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
            result = resp.json()
            return result["choices"][0]["message"]["content"] or ""
        except httpx.HTTPError as e:
            raise GenerationError(f"Language model request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise GenerationError(f"Unexpected language model response: {e}") from e

    async def generate_steps(self, description: str, target_url: str) -> list[str]:
        """Ask the model for an ordered list of instruction strings.

        Raises:
            GenerationError: on transport errors, malformed JSON, or an empty plan
        """
        content = await self._chat(
            STEPS_PROMPT.format(description=description, target_url=target_url),
            json_mode=True,
        )
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Steps response is not JSON: {e}") from e

        steps = data.get("steps") if isinstance(data, dict) else None
        if not isinstance(steps, list):
            raise GenerationError("Steps response has no 'steps' array")
        steps = [str(step).strip() for step in steps if str(step).strip()]
        if not steps:
            raise GenerationError("Language model returned no steps")

        logger.info("Generated %d steps for %s", len(steps), target_url)
        return steps

    async def generate_narration(self, steps: list[str], style: str = "professional") -> str:
        """Ask the model for a narration script covering ``steps``."""
        numbered = "\n".join(f"{i}. {step}" for i, step in enumerate(steps, 1))
        script = (await self._chat(NARRATION_PROMPT.format(steps=numbered, style=style))).strip()
        if not script:
            raise GenerationError("Language model returned an empty narration")
        return script
