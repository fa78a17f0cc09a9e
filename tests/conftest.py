# tests/conftest.py
import pytest

from flippermsg.core import log
from flippermsg.core import metrics


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging():
    # Setup logging (reads LOG_LEVEL / LOG_JSON / .env if available)
    log.setup()
    yield


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield
    metrics.reset()


class StubMessage:
    def __init__(self):
        self.calls = []

    def set_destination(self, destination):
        self.calls.append(("set_destination", destination))
        self.destination = destination

    def set_binary_attachment(self, data):
        self.calls.append(("set_binary_attachment", data))
        self.binary_attachment = data

    def set_delivery_mode(self, mode):
        self.calls.append(("set_delivery_mode", mode))
        self.delivery_mode = mode


class StubBusClient:
    """Records every call made on the vendor surface."""

    class DeliveryMode:
        DIRECT = "DIRECT"
        PERSISTENT = "PERSISTENT"

    def __init__(self):
        self.calls = []

    def create_message(self):
        self.calls.append(("create_message",))
        return StubMessage()

    def create_topic_destination(self, topic):
        self.calls.append(("create_topic_destination", topic))
        return ("topic", topic)


class StubSession:
    def __init__(self, fail_with=None):
        self.sent = []
        self.fail_with = fail_with

    def send(self, message):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)


@pytest.fixture
def bus_client():
    return StubBusClient()


@pytest.fixture
def session():
    return StubSession()
