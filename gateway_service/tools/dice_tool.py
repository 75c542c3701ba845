import random
from typing import Annotated, Optional

from pydantic import Field

from gateway_service.tools.base import BaseTool


class RollDiceTool(BaseTool):
    """Roll a die and return the face that came up."""

    def __init__(self, seed: Optional[int] = None):
        super().__init__()
        self._rng = random.Random(seed)

    async def run(self, sides: Annotated[int, Field(ge=1)] = 6) -> str:
        """
        Roll a die with the given number of faces.
        Args:
            sides: Number of faces on the die.
        """
        return str(self._rng.randint(1, sides))
