"""Per-scenario context."""

from dataclasses import dataclass, field

from .client import PluginClient
from .config import SanityConfig
from .naming import IdentifierGenerator
from .tracker import ResourceTracker


@dataclass
class ScenarioContext:
    """Everything one scenario needs. Never shared between scenarios."""

    client: PluginClient
    names: IdentifierGenerator
    tracker: ResourceTracker
    staging_path: str
    target_path: str
    secrets: dict[str, dict[str, str]] = field(default_factory=dict)
    volume_parameters: dict[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        client: PluginClient,
        config: SanityConfig,
        names: IdentifierGenerator,
    ) -> "ScenarioContext":
        """Build a fresh context, with its own tracker, from run configuration."""
        secrets = {call: dict(values) for call, values in config.secrets.items()}
        return cls(
            client=client,
            names=names,
            tracker=ResourceTracker(client, secrets),
            staging_path=config.staging_path,
            target_path=config.target_path,
            secrets=secrets,
            volume_parameters=dict(config.test_volume_parameters),
        )

    def secrets_for(self, call: str) -> dict[str, str]:
        return dict(self.secrets.get(call, {}))
