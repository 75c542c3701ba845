import asyncio
from typing import AsyncGenerator

from gateway_service.tools.base import BaseTool

REPLY_TEMPLATE = (
    "Hello! Here is my answer about \"{prompt}\". "
    "This is a demo of a streamed response. "
    "The text appears a little at a time, "
    "the way a model looks while it is thinking. "
    "A real model integration would relay its own stream from here."
)


class StreamChatTool(BaseTool):
    """Answer a prompt as a stream of growing text snapshots."""

    def __init__(self, delay: float = 0.1):
        super().__init__()
        self.delay = delay

    async def run(self, prompt: str) -> AsyncGenerator[str, None]:
        """
        Stream a canned reply one word at a time.
        Args:
            prompt: The user's message.
        """
        reply = ""
        for word in REPLY_TEMPLATE.format(prompt=prompt).split(" "):
            if self.delay:
                await asyncio.sleep(self.delay)
            reply += word + " "
            yield reply
