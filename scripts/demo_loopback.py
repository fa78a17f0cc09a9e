import argparse
import os

from flippermsg.core import log
from flippermsg.core.bus import LoopbackBus
from flippermsg.core.contracts import TeamsMessage, UsersAckMessage, UsersMessage
from flippermsg.core.metrics import snapshot
from flippermsg.core.publisher import publish_message_to_topic
from flippermsg.wire_config import build_router, load_config


def main():
    ap = argparse.ArgumentParser(description="register a user and push a puzzle over the loopback bus")
    ap.add_argument("--config", default=os.getenv("FLIPPER_CONFIG"))
    ap.add_argument("--username", default="alice")
    ap.add_argument("--client-id", default="c1")
    args = ap.parse_args()

    cfg = load_config(args.config)
    log.setup(cfg.log_level, cfg.log_json)
    lg = log.get("demo.loopback")

    bus = LoopbackBus()
    session = bus.session()
    router = build_router(cfg)

    def on_ack(msg):
        lg.info("ack for %s: success=%s", msg.get_username(), msg.is_success())

    def on_team(msg):
        lg.info("puzzle assigned: %s", msg.get_puzzle())

    router.on("user/", on_ack)
    router.on("team/", on_team)
    bus.subscribe("user/>", lambda topic, data: router.handle(topic, data, unknown=cfg.unknown_keys))
    bus.subscribe("team/>", lambda topic, data: router.handle(topic, data, unknown=cfg.unknown_keys))

    # server side of the exchange, played locally
    def on_register(topic, data):
        req = UsersMessage.from_json(data)
        ack = UsersAckMessage(UsersAckMessage.SUCCESS, req.username, req.client_id)
        publish_message_to_topic(f"user/{req.client_id}", ack, session, bus)

    bus.subscribe("users", on_register)

    publish_message_to_topic("users", UsersMessage(args.username, args.client_id), session, bus)
    publish_message_to_topic("team/1", TeamsMessage(puzzle=[3, 1, 2, 0]), session, bus)

    for c in snapshot()["counters"]:
        lg.info("[ctr] %s %s value=%.0f", c["name"], c["labels"], c["value"])


if __name__ == "__main__":
    main()
