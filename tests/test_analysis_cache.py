from speechcoach.core.analysis.cache import AnalysisCache, cache_key
from speechcoach.core.audio.postprocess import EncodedAudio


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _audio(payload: bytes) -> EncodedAudio:
    return EncodedAudio(data=payload, sample_rate=22_050, channels=1)


def test_key_depends_on_content() -> None:
    assert cache_key(_audio(b"abc")) == cache_key(_audio(b"abc"))
    assert cache_key(_audio(b"abc")) != cache_key(_audio(b"abd"))


def test_get_or_compute_reuses_result() -> None:
    cache: AnalysisCache[str] = AnalysisCache()
    calls = []

    def compute() -> str:
        calls.append(1)
        return "metrics"

    assert cache.get_or_compute(_audio(b"one"), compute) == "metrics"
    assert cache.get_or_compute(_audio(b"one"), compute) == "metrics"
    assert len(calls) == 1


def test_entries_expire() -> None:
    clock = FakeClock()
    cache: AnalysisCache[str] = AnalysisCache(ttl_seconds=10.0, clock=clock)
    cache.put(_audio(b"one"), "value")

    clock.now = 5.0
    assert cache.get(_audio(b"one")) == "value"

    clock.now = 10.5
    assert cache.get(_audio(b"one")) is None
    assert len(cache) == 0


def test_least_recently_used_entry_evicted() -> None:
    cache: AnalysisCache[str] = AnalysisCache(max_entries=2)
    cache.put(_audio(b"a"), "a")
    cache.put(_audio(b"b"), "b")
    cache.get(_audio(b"a"))

    cache.put(_audio(b"c"), "c")

    assert cache.get(_audio(b"a")) == "a"
    assert cache.get(_audio(b"b")) is None
    assert cache.get(_audio(b"c")) == "c"


def test_zero_size_disables_cache() -> None:
    cache: AnalysisCache[str] = AnalysisCache(max_entries=0)

    cache.put(_audio(b"a"), "a")

    assert cache.get(_audio(b"a")) is None
