import pytest


class FakeChannel:
    def __init__(self, name, prefix, connected=True, fail=False):
        self.name = name
        self._prefix = prefix
        self._connected = connected
        self._fail = fail
        self.sent = []
        self.disconnected = False

    async def connect(self):
        self._connected = True

    async def send_message(self, jid, text):
        if self._fail:
            raise ConnectionError("socket closed")
        self.sent.append((jid, text))

    def is_connected(self):
        return self._connected

    def owns_jid(self, jid):
        return jid.startswith(self._prefix)

    async def disconnect(self):
        self.disconnected = True
        self._connected = False


@pytest.fixture
def make_channel():
    return FakeChannel
