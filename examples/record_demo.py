#!/usr/bin/env python3
"""Record a demo video of a short walkthrough and print progress as it runs."""

import asyncio
import logging

from runthru import Config, RunThru


async def main():
    """Create a recording, start it and follow its events until it finishes."""
    logging.basicConfig(level=logging.INFO)

    async with RunThru(Config.load()) as app:
        recording = await app.create_recording({
            "title": "Example homepage tour",
            "description": "Open the homepage and follow the first link",
            "target_url": "https://example.com",
            "test_steps": [
                "Navigate to https://example.com",
                "Wait 2 seconds",
                "Take a screenshot",
                "Click 'More information'",
                "Scroll down 300 pixels",
            ],
            # No speech key needed for a silent video
            "narration": {"auto_generate": False},
        })
        print(f"Created recording {recording.id}")

        async with app.subscribe(recording.id) as events:
            await app.start_recording(recording.id)
            async for event in events:
                if event.event == "step":
                    status = "ok" if event.step.success else f"failed: {event.step.error}"
                    print(f"  step {event.step.sequence_id}: {event.step.instruction} ({status})")
                else:
                    print(f"[{event.progress:3d}%] {event.status.value}: {event.current_step}")
                if event.event in ("completed", "failed"):
                    break

        recording = await app.get_recording(recording.id)
        print(f"Final video: {recording.final_video_path} ({recording.duration}s)")


async def generated_steps_example():
    """Let the language model (or the fallback plan) write the steps."""
    async with RunThru(Config.load()) as app:
        steps = await app.generate_steps("Check the pricing page loads", "https://example.com")
        for step in steps:
            print(f"- {step}")


if __name__ == "__main__":
    asyncio.run(main())
