"""Scripted conversation shown on the landing page.

The script is a fixed list of steps; after the last step the demo starts
over from the first one.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class DemoStep:
    text: str
    speaker: str
    delay: float = 2.0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


DEFAULT_SCRIPT: Sequence[DemoStep] = (
    DemoStep("Human: What's the secret to happiness?", "human1"),
    DemoStep("Bot: Happiness is finding meaning in the small things.", "bot"),
    DemoStep("Human2: Do you think technology can make us happier?", "human2"),
    DemoStep(
        "Bot: Technology enhances connection, but true happiness comes from within.",
        "bot",
    ),
)


class TypingDemo:
    def __init__(self, script: Sequence[DemoStep] = DEFAULT_SCRIPT) -> None:
        if not script:
            raise ValueError("typing demo needs at least one step")
        self.script: List[DemoStep] = list(script)
        self.index = 0

    @property
    def current(self) -> DemoStep:
        return self.script[self.index]

    def advance(self) -> DemoStep:
        self.index = (self.index + 1) % len(self.script)
        return self.current

    def reset(self) -> None:
        self.index = 0

    async def play(
        self,
        cycles: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncIterator[DemoStep]:
        """Yield steps in order, waiting each step's delay; cycles=None never ends."""
        done = 0
        while cycles is None or done < cycles:
            step = self.current
            yield step
            await sleep(step.delay)
            if self.index == len(self.script) - 1:
                done += 1
            self.advance()
