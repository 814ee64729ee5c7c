from datetime import timedelta

ACTIVITY = "act_test0001"
OTHER_ACTIVITY = "act_test0002"
RUNNER = "usr_runr0001"
BRANDENBURG_GATE = {"lat": 52.5163, "lng": 13.3777}


class Recorder:
    """Delivery function that remembers what each connection was sent."""

    def __init__(self):
        self.events = []

    async def __call__(self, connection_id, event):
        self.events.append((connection_id, event))

    def sent_to(self, connection_id):
        return [event for conn, event in self.events if conn == connection_id]

    def kinds(self, connection_id):
        return [event["kind"] for event in self.sent_to(connection_id)]


class Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)
        return self.now
