import pytest
from querynox.services.cost_tracker import CostTracker


@pytest.fixture
def cost_tracker(test_settings):
    return CostTracker(test_settings)


class TestCostCalculations:
    def test_chat_cost_gpt35(self, cost_tracker):
        cost = cost_tracker.calculate_chat_cost("gpt-3.5-turbo", 1000, 500)
        # 1000/1M * 0.50 + 500/1M * 1.50 = 0.0005 + 0.00075 = 0.00125
        assert abs(cost - 0.00125) < 0.000001

    def test_chat_cost_claude_sonnet(self, cost_tracker):
        cost = cost_tracker.calculate_chat_cost("claude-3-5-sonnet-20240620", 1000, 500)
        # 1000/1M * 3.00 + 500/1M * 15.00 = 0.003 + 0.0075 = 0.0105
        assert abs(cost - 0.0105) < 0.0001

    def test_chat_cost_openrouter_model(self, cost_tracker):
        cost = cost_tracker.calculate_chat_cost("openai/gpt-oss-120b", 10000, 5000)
        # 10000/1M * 0.10 + 5000/1M * 0.50 = 0.001 + 0.0025 = 0.0035
        assert abs(cost - 0.0035) < 0.0001

    def test_chat_cost_unknown_model(self, cost_tracker):
        cost = cost_tracker.calculate_chat_cost("unknown-model", 1000, 500)
        assert cost == 0.0

    def test_image_cost(self, cost_tracker):
        assert cost_tracker.calculate_image_cost("dall-e-3") == pytest.approx(0.04)
        assert cost_tracker.calculate_image_cost("dall-e-3", images=2) == pytest.approx(0.08)

    def test_image_cost_unknown_model(self, cost_tracker):
        assert cost_tracker.calculate_image_cost("unknown-model") == 0.0
