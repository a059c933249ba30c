"""
In-memory fakes for every external collaborator of a workflow run.
"""

from sheetqa.core.config.constants import ErrorKind, Phase
from sheetqa.core.exceptions import DeliveryError
from sheetqa.core.models import ModelChunk, ReferenceData


class FakeClock:
    """
    Manually advanced millisecond clock.

    With ``step`` set, every reading advances the clock by ``step`` ms.
    """

    def __init__(self, start: float = 0.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        reading = self.now
        self.now += self.step
        return reading

    def advance(self, ms: float) -> None:
        self.now += ms


class InMemoryRedis:
    """
    In-memory Redis client stub for testing.

    Records the key and TTL of every write; ``expire(key)`` simulates TTL expiry.
    """

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.set_calls: list[str] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key):
        if self.fail_reads:
            raise ConnectionError("redis unavailable")
        return self.data.get(key)

    async def set(self, key, value, ttl=None):
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        self.set_calls.append(key)
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def ping(self):
        return True

    def expire(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class FakeSink:
    """
    Delivery sink recording every edit and post.

    ``edit_results`` is consumed per edit (True = success); when exhausted
    every edit succeeds. ``post_failures`` posts raise before one succeeds.
    """

    def __init__(self, edit_results=None, post_failures: int = 0):
        self.edits: list[str] = []
        self.posts: list[str] = []
        self.edit_results = list(edit_results or [])
        self.post_failures = post_failures
        self.post_attempts = 0

    async def edit_existing(self, content: str) -> bool:
        self.edits.append(content)
        if self.edit_results:
            return self.edit_results.pop(0)
        return True

    async def post_new(self, content: str) -> bool:
        self.post_attempts += 1
        if self.post_attempts <= self.post_failures:
            raise DeliveryError("webhook down", kind=ErrorKind.SERVER)
        self.posts.append(content)
        return True


class FakeModel:
    """
    Model source yielding scripted chunks.

    ``streams`` is a list of scripts, one per ``generate_stream`` call (the
    last one repeats). A script entry that is an exception is raised at
    that point of the stream.
    """

    def __init__(self, streams=None, summary: str = "要約中", summary_error: Exception | None = None):
        self.streams = streams or [[ModelChunk("Answer text", Phase.RESPONSE)]]
        self.summary = summary
        self.summary_error = summary_error
        self.stream_calls: list[tuple[str, list]] = []
        self.summary_calls: list[str] = []

    async def generate_stream(self, prompt, history):
        index = min(len(self.stream_calls), len(self.streams) - 1)
        self.stream_calls.append((prompt, list(history)))
        for item in self.streams[index]:
            if isinstance(item, Exception):
                raise item
            yield item

    async def generate_once(self, prompt):
        self.summary_calls.append(prompt)
        if self.summary_error is not None:
            raise self.summary_error
        return self.summary


class FakeReferenceSource:
    def __init__(self, data: str = "name,age\nalice,30\n", description: str = "People", error=None):
        self.data = data
        self.description = description
        self.error = error
        self.authenticate_calls = 0
        self.fetch_calls = 0

    async def authenticate(self, credentials_json):
        self.authenticate_calls += 1
        return "access-token"

    async def fetch(self, token):
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return ReferenceData(data=self.data, description=self.description)


class FakeTracker:
    """Issue tracker recording created issues; search hits are scripted."""

    def __init__(self, existing: int = 0, create_ok: bool = True):
        self.existing = existing
        self.create_ok = create_ok
        self.searches: list[str] = []
        self.created: list[tuple[str, str]] = []
        self.reports: list = []

    async def is_duplicate(self, fingerprint):
        self.searches.append(fingerprint)
        return self.existing > 0

    async def create_issue(self, report, fingerprint):
        self.reports.append(report)
        self.created.append(("error", fingerprint))
        return self.create_ok

    async def create_health_check_issue(self, report, fingerprint):
        self.reports.append(report)
        self.created.append(("health", fingerprint))
        return self.create_ok

