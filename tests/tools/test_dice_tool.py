import pytest

from gateway_service.tools.dice_tool import RollDiceTool


@pytest.mark.asyncio
async def test_roll_is_within_range():
    tool = RollDiceTool(seed=42)
    rolls = {int(await tool.run(sides=6)) for _ in range(200)}
    assert rolls <= set(range(1, 7))
    assert len(rolls) == 6


@pytest.mark.asyncio
async def test_one_sided_die():
    assert await RollDiceTool().run(sides=1) == "1"


@pytest.mark.asyncio
async def test_seeded_rolls_repeat():
    a, b = RollDiceTool(seed=7), RollDiceTool(seed=7)
    assert [await a.run(20) for _ in range(5)] == [await b.run(20) for _ in range(5)]


def test_input_model_rejects_zero_sides():
    model = RollDiceTool().input_model
    assert model.model_validate({}).sides == 6
    with pytest.raises(Exception):
        model.model_validate({"sides": 0})
