"""
下注通知旁路测试
验证通知为尽力而为: 失败只记录日志，不影响本地状态
"""
import json

import httpx

from fruitwheel.api_client import ApiPaths, GameApiClient
from fruitwheel.models import Item, StakeEvent
from fruitwheel.notifier import HttpStakeNotifier


EVENT = StakeEvent(player_id="p1", balance=900, amount=100, item=Item.HONEY)


def make_client(handler) -> GameApiClient:
    return GameApiClient("https://example.test", transport=httpx.MockTransport(handler))


async def test_notification_posts_stake_fields():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler)
    notifier = HttpStakeNotifier(client)
    try:
        notifier.notify(EVENT)
        assert notifier.pending == 1
        await notifier.drain()
    finally:
        await notifier.close()
        await client.close()

    assert len(requests) == 1
    assert requests[0].method == "POST"
    assert requests[0].url.path == ApiPaths.PLAYER_BET
    assert json.loads(requests[0].content) == {
        "regisation": "3",
        "player_id": "p1",
        "balance": 900,
        "amount": 100,
        "element": "honey",
    }


async def test_failures_are_swallowed_and_logged(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["amount"] == 1:
            raise httpx.ConnectError("refused")
        return httpx.Response(500)

    client = make_client(handler)
    notifier = HttpStakeNotifier(client)
    try:
        notifier.notify(StakeEvent("p1", 999, 1, Item.COLA))
        notifier.notify(EVENT)
        await notifier.drain()
    finally:
        await notifier.close()
        await client.close()

    assert notifier.pending == 0
    messages = [r.getMessage() for r in caplog.records]
    assert any("failed" in m for m in messages)
    assert any("HTTP 500" in m for m in messages)


async def test_closed_notifier_drops_events():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    client = make_client(handler)
    notifier = HttpStakeNotifier(client)
    await notifier.close()

    notifier.notify(EVENT)

    assert notifier.pending == 0
    await client.close()
    assert requests == []
