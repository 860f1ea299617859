"""
远端配置提供者测试
使用 httpx.MockTransport 模拟后端，验证解析、逐字段回退和带请求体的 GET
"""
import json

import httpx
import pytest

from fruitwheel.api_client import ApiPaths, GameApiClient
from fruitwheel.config_provider import (
    ConfigProvider,
    parse_elements,
    parse_number_list,
    parse_session_end,
    VALUE_KEYS,
)
from fruitwheel.error_handler import RetryConfig
from fruitwheel.models import Item


NO_RETRY = RetryConfig(max_retries=0)


def make_client(handler) -> GameApiClient:
    return GameApiClient("https://example.test", registration="3", transport=httpx.MockTransport(handler))


class TestParsers:
    """测试响应解析"""

    def test_parse_elements_list(self):
        payload = {"data": [
            {"name": "honey", "multiplier": 50, "weight": 2},
            {"name": "番茄", "multiplier": "6"},
            {"name": "durian", "multiplier": 99},
        ]}

        multipliers, weights = parse_elements(payload)

        assert multipliers == {Item.HONEY: 50, Item.TOMATO: 6}
        assert weights == {Item.HONEY: 2.0}

    def test_parse_elements_mapping(self):
        multipliers, weights = parse_elements({"cola": 20, "water": {"multiplier": 12, "weight": 0}})

        assert multipliers == {Item.COLA: 20, Item.WATER: 12}
        assert weights == {Item.WATER: 0.0}

    def test_parse_elements_without_known_items(self):
        with pytest.raises(ValueError):
            parse_elements([{"name": "durian", "multiplier": 3}])

    def test_parse_number_list(self):
        assert parse_number_list([{"value": 10}, {"value": "100"}, {"value": -1}], VALUE_KEYS) == (10, 100)
        with pytest.raises(ValueError):
            parse_number_list({"data": []}, VALUE_KEYS)

    def test_parse_session_end_converts_milliseconds(self):
        assert parse_session_end({"end_time": 1_700_000_000_000}) == 1_700_000_000.0
        assert parse_session_end({"end_time": 1_700_000_000}) == 1_700_000_000.0

    @pytest.mark.parametrize("raw", ["nan", "inf", 1e400, float("-inf")])
    def test_parse_session_end_rejects_non_finite(self, raw):
        with pytest.raises(ValueError):
            parse_session_end({"end_time": raw})

    def test_non_finite_numbers_are_skipped(self):
        multipliers, weights = parse_elements([
            {"name": "honey", "multiplier": float("inf"), "weight": "nan"},
            {"name": "cola", "multiplier": 20, "weight": 1e400},
        ])

        assert multipliers == {Item.COLA: 20}
        assert weights == {}
        assert parse_number_list([{"value": float("inf")}, {"value": 10}], VALUE_KEYS) == (10,)


class TestConfigProvider:
    """测试配置加载"""

    async def test_get_requests_carry_registration_body(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": [{"value": 20}]})

        client = make_client(handler)
        try:
            await client.get_with_body(ApiPaths.BUTTONS)
        finally:
            await client.close()

        assert requests[0].method == "GET"
        assert requests[0].url.path == ApiPaths.BUTTONS
        assert requests[0].headers["content-type"] == "text/plain"
        assert json.loads(requests[0].content) == {"regisation": "3"}

    async def test_load_all_fields(self):
        responses = {
            ApiPaths.ELEMENTS: [{"name": "honey", "multiplier": 60}],
            ApiPaths.BUTTONS: [{"value": 20}, {"value": 200}],
            ApiPaths.MAX_FRUITS: {"maximum": 4},
            ApiPaths.BOXES: [{"reward": 2_000}, {"reward": 6_000}],
            ApiPaths.JACKPOT: {"jackpot": 80_000},
            ApiPaths.SESSION_END: {"end_time": 1_700_000_000_000},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=responses[request.url.path])

        client = make_client(handler)
        try:
            overrides = await ConfigProvider(client, retry=NO_RETRY).load()
        finally:
            await client.close()

        assert overrides.multipliers == {Item.HONEY: 60}
        assert overrides.chips == (20, 200)
        assert overrides.max_stakes == 4
        assert overrides.milestone_rewards == (2_000, 6_000)
        assert overrides.jackpot_bonus == 80_000
        assert overrides.session_end_at == 1_700_000_000.0

    async def test_failed_fields_fall_back_independently(self):
        """单个接口失败只影响对应字段"""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == ApiPaths.BUTTONS:
                return httpx.Response(200, json=[{"value": 50}])
            if request.url.path == ApiPaths.ELEMENTS:
                return httpx.Response(200, content=b"not json")
            if request.url.path == ApiPaths.MAX_FRUITS:
                raise httpx.ConnectError("refused")
            return httpx.Response(404)

        client = make_client(handler)
        try:
            overrides = await ConfigProvider(client, retry=NO_RETRY).load()
        finally:
            await client.close()

        assert overrides.chips == (50,)
        assert overrides.multipliers is None
        assert overrides.weights is None
        assert overrides.max_stakes is None
        assert overrides.milestone_rewards is None
        assert overrides.jackpot_bonus is None
        assert overrides.session_end_at is None

    async def test_server_errors_are_retried(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path != ApiPaths.MAX_FRUITS:
                return httpx.Response(404)
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"maximum": 5})

        client = make_client(handler)
        retry = RetryConfig(max_retries=2, base_delay=0.0)
        try:
            overrides = await ConfigProvider(client, retry=retry).load()
        finally:
            await client.close()

        assert calls["count"] == 2
        assert overrides.max_stakes == 5

    async def test_overflowing_numbers_fall_back_per_field(self):
        """后端返回 1e400 时只丢弃对应字段，其他字段照常生效"""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == ApiPaths.ELEMENTS:
                return httpx.Response(200, content=b'[{"name": "honey", "multiplier": 1e400}]')
            if request.url.path == ApiPaths.JACKPOT:
                return httpx.Response(200, content=b'{"amount": 1e400}')
            if request.url.path == ApiPaths.SESSION_END:
                return httpx.Response(200, content=b'{"end_time": 1e400}')
            if request.url.path == ApiPaths.BUTTONS:
                return httpx.Response(200, json=[1, 2, 3])
            return httpx.Response(404)

        client = make_client(handler)
        try:
            overrides = await ConfigProvider(client, retry=NO_RETRY).load()
        finally:
            await client.close()

        assert overrides.chips == (1, 2, 3)
        assert overrides.multipliers is None
        assert overrides.jackpot_bonus is None
        assert overrides.session_end_at is None
