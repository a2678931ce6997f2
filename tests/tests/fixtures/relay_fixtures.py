"""
Helpers shared by relay tests: a controllable clock, config builders and
body readers that record whether they were consulted.
"""

from tether.config.settings import APIConfig, LoggingConfig, RelayConfig, Settings, StoreConfig

START_TIME = 1_700_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_relay_config(**overrides) -> RelayConfig:
    values = {
        'session_ttl': 600,
        'max_messages': 60,
        'max_body_bytes': 64 * 1024,
        'registry_sweep_interval': 300.0,
        'conflict_retries': 3,
    }
    values.update(overrides)
    return RelayConfig(**values)


def make_settings(allowed_origins: str = '', **relay_overrides) -> Settings:
    return Settings(
        environment='testing',
        logging=LoggingConfig(log_level='DEBUG', log_format='human', log_output='stdout'),
        relay=make_relay_config(**relay_overrides),
        store=StoreConfig(store_backend='memory'),
        api=APIConfig(allowed_origins=allowed_origins, docs_enabled=False)
    )


def body_reader(payload: bytes):
    """Build a body reader returning ``payload``; ``reader.calls`` counts reads."""
    async def reader() -> bytes:
        reader.calls += 1
        return payload

    reader.calls = 0
    return reader
