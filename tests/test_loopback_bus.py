import json
import logging

import pytest

from flippermsg.core import metrics
from flippermsg.core.bus import BusError, DeliveryMode, LoopbackBus
from flippermsg.core.contracts import TeamsMessage, UsersAckMessage, UsersMessage
from flippermsg.core.dispatcher import TopicRouter
from flippermsg.core.publisher import publish_message_to_topic


def test_publish_over_loopback_reaches_wildcard_subscriber():
    bus = LoopbackBus()
    got = []
    bus.subscribe("team/>", lambda topic, data: got.append((topic, json.loads(data))))

    publish_message_to_topic("team/3", TeamsMessage(puzzle="X"), bus.session(), bus)

    assert got == [("team/3", {"puzzle": "X"})]
    assert bus.sent[-1].delivery_mode is DeliveryMode.DIRECT
    assert metrics.value("bus_deliver_total", topic="team/3") == 1


def test_exact_topic_does_not_match_children():
    bus = LoopbackBus()
    got = []
    bus.subscribe("users", lambda t, d: got.append(t))
    s = bus.session()
    publish_message_to_topic("users", {"a": 1}, s, bus)
    publish_message_to_topic("users/x", {"a": 1}, s, bus)
    assert got == ["users"]


def test_fanout_in_subscription_order_and_error_isolation(caplog):
    bus = LoopbackBus()
    order = []

    def first(t, d):
        order.append("first")
        raise RuntimeError("subscriber broke")

    bus.subscribe("team/>", first)
    bus.subscribe("team/1", lambda t, d: order.append("second"))

    with caplog.at_level(logging.ERROR):
        publish_message_to_topic("team/1", {"puzzle": 0}, bus.session(), bus)

    assert order == ["first", "second"]
    assert "deliver error topic=team/1" in caplog.text


def test_unsubscribe_stops_delivery():
    bus = LoopbackBus()
    got = []

    def cb(t, d):
        got.append(t)

    bus.subscribe("team/>", cb)
    bus.unsubscribe("team/>", cb)
    publish_message_to_topic("team/1", {}, bus.session(), bus)
    assert got == []


def test_closed_session_raises_through_publisher():
    bus = LoopbackBus()
    s = bus.session()
    s.close()
    with pytest.raises(BusError):
        publish_message_to_topic("team/1", {"puzzle": 1}, s, bus)


def test_message_without_destination_is_rejected():
    bus = LoopbackBus()
    with pytest.raises(BusError):
        bus.session().send(bus.create_message())


def test_sent_history_is_bounded():
    bus = LoopbackBus(maxlen=2)
    s = bus.session()
    for i in range(5):
        publish_message_to_topic(f"team/{i}", {"i": i}, s, bus)
    assert [m.destination.name for m in bus.sent] == ["team/3", "team/4"]


def test_registration_exchange_end_to_end():
    bus = LoopbackBus()
    session = bus.session()
    router = TopicRouter()
    acks = []
    router.on("user/", acks.append)
    bus.subscribe("user/>", lambda t, d: router.handle(t, d))

    def server(topic, data):
        req = UsersMessage.from_json(data)
        ack = UsersAckMessage(UsersAckMessage.SUCCESS, req.username, req.client_id)
        publish_message_to_topic(f"user/{req.client_id}", ack, session, bus)

    bus.subscribe("users", server)
    publish_message_to_topic("users", UsersMessage("alice", "c1"), session, bus)

    assert len(acks) == 1
    assert acks[0].is_success()
    assert acks[0].username == "alice"
    assert acks[0].client_id == "c1"
