"""Provider 包测试 fixtures"""

import pytest


@pytest.fixture
def sample_messages() -> list[dict[str, str]]:
    """标准 messages 格式测试数据"""
    return [
        {"role": "system", "content": "You are PlanPal's planning assistant."},
        {"role": "user", "content": "suggest a restaurant"},
    ]
