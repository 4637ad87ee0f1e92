"""Tests for YAML configuration loading and environment-variable resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from gcp_env_provisioner.config.loader import ConfigurationError, load_config

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from gcp_env_provisioner.config.schema import EnvironmentSpec

_FULL_YAML = """\
provider:
  environment: test
  region: europe-west1

project_prefix: acme
billing_account: 0123AB-4567CD-89EF01
labels:
  team: platform

enable_components:
  gke: true
  databases: true
  redis: false
  pubsub: true

subnets:
  subnet-gke:
    cidr: 10.0.0.0/20
    secondary_ranges:
      pods: 10.4.0.0/14
      services: 10.8.0.0/20
  subnet-data:
    cidr: 10.1.0.0/24

gke_config:
  subnet_name: subnet-gke
  pods_range_name: pods
  services_range_name: services
  node_pools:
    - name: general
      max_node_count: 5

databases:
  - name: main-db
    databases: [app, audit]

pubsub_config:
  topics:
    - events
    - name: audit-log
      message_retention_duration: 86400s
"""


class TestLoadConfigFull:
    def test_full_yaml_parses(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        config = make_config(_FULL_YAML)

        assert config.environment == "test"
        assert config.provider.region == "europe-west1"
        assert config.resolved_project_id == "acme-test"
        assert config.resolved_network_name == "test-vpc"
        assert config.enable_components.gke is True
        assert config.enable_components.redis is False
        assert config.gke_config is not None
        assert config.gke_config.node_pools[0].name == "general"
        assert config.databases[0].databases == ["app", "audit"]
        assert config.pubsub_config is not None
        assert [t.name for t in config.pubsub_config.topics] == ["events", "audit-log"]

    def test_config_dir_set_to_parent(self, tmp_path: Path) -> None:
        f = tmp_path / "sub" / "gcp-env.yaml"
        f.parent.mkdir()
        f.write_text("create_network: false\n")
        assert load_config(f).config_dir == f.parent

    def test_empty_file_uses_defaults(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        config = make_config("")
        assert config.environment == "dev"
        assert config.create_project is True
        assert config.create_network is True
        assert config.enable_components.model_dump() == {
            "gke": False,
            "databases": False,
            "redis": False,
            "pubsub": False,
        }

    def test_default_state_file_is_per_environment(
        self, make_config: Callable[..., EnvironmentSpec]
    ) -> None:
        assert str(make_config("", environment="staging").state_file).endswith(
            "staging.state.json"
        )
        assert str(make_config("state_path: custom.json\n").state_file) == "custom.json"


class TestLoadConfigErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Failed to read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        with pytest.raises(ConfigurationError):
            make_config("provider: [unclosed\n")

    def test_top_level_must_be_mapping(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            make_config("- a\n- b\n")

    def test_unknown_key_rejected(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        with pytest.raises(ConfigurationError, match="create_netwrok"):
            make_config("create_netwrok: false\n")

    def test_flags_must_be_booleans(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        with pytest.raises(ConfigurationError, match="gke"):
            make_config('enable_components:\n  gke: "yes"\n')

    def test_invalid_environment_name(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        with pytest.raises(ConfigurationError, match="environment"):
            make_config("", environment="Prod_1")


class TestEnvironmentResolution:
    def test_env_var_fills_missing_field(
        self, make_config: Callable[..., EnvironmentSpec], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GCP_REGION", "asia-east1")
        monkeypatch.setenv("GCP_BILLING_ACCOUNT", "AAAAAA-BBBBBB-CCCCCC")
        config = make_config("")
        assert config.provider.region == "asia-east1"
        assert config.billing_account == "AAAAAA-BBBBBB-CCCCCC"

    def test_yaml_wins_over_env(
        self, make_config: Callable[..., EnvironmentSpec], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GCP_REGION", "asia-east1")
        config = make_config("provider:\n  region: europe-west4\n")
        assert config.provider.region == "europe-west4"

    def test_env_wins_over_dotenv(
        self, make_config: Callable[..., EnvironmentSpec], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GCP_PROJECT_PREFIX", "from-env")
        config = make_config("", dotenv="GCP_PROJECT_PREFIX=from-dotenv\n")
        assert config.project_prefix == "from-env"

    def test_dotenv_used_as_fallback(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        config = make_config(
            "",
            dotenv="GCP_ENVIRONMENT=staging\nGCP_EXISTING_PROJECT_ID=proj-123\n",
        )
        assert config.environment == "staging"
        assert config.existing_project_id == "proj-123"

    def test_credentials_are_secret(self, make_config: Callable[..., EnvironmentSpec]) -> None:
        config = make_config("", dotenv="GCP_CREDENTIALS='{\"type\": \"service_account\"}'\n")
        assert config.provider.credentials is not None
        assert "service_account" not in repr(config.provider)
        assert config.provider.credentials.get_secret_value() == '{"type": "service_account"}'

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("false", False), ("FALSE", False), ("no", False), ("true", True), ("on", True)],
    )
    def test_create_project_from_env(
        self,
        make_config: Callable[..., EnvironmentSpec],
        monkeypatch: pytest.MonkeyPatch,
        raw: str,
        expected: bool,
    ) -> None:
        monkeypatch.setenv("GCP_CREATE_PROJECT", raw)
        assert make_config("").create_project is expected

    def test_invalid_boolean_env(
        self, make_config: Callable[..., EnvironmentSpec], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GCP_CREATE_PROJECT", "maybe")
        with pytest.raises(ConfigurationError, match="GCP_CREATE_PROJECT"):
            make_config("")

    def test_environment_argument_wins(
        self, make_config: Callable[..., EnvironmentSpec], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GCP_ENVIRONMENT", "staging")
        config = make_config("provider:\n  environment: test\n", environment="qa")
        assert config.environment == "qa"
        assert config.resolved_project_id == "dev-env-qa"
