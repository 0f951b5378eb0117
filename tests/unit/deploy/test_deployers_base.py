"""Unit tests for BaseDeployer interface."""

from __future__ import annotations

import inspect

import pytest

from funcstage.deploy.deployers import create_deployer
from funcstage.deploy.deployers.base import BaseDeployer
from funcstage.models.function import TriggerKind


class TestBaseDeployerInterface:
    """Tests for BaseDeployer abstract interface."""

    def test_base_deployer_is_abstract(self) -> None:
        """Test BaseDeployer cannot be instantiated directly."""
        with pytest.raises(TypeError):
            BaseDeployer()  # type: ignore[abstract]

    def test_base_deployer_abstract_methods(self) -> None:
        """Test BaseDeployer declares required abstract methods."""
        assert BaseDeployer.__abstractmethods__ == {"deploy", "get_status", "destroy"}

    def test_stream_logs_is_optional(self) -> None:
        """Providers without log access inherit a NotImplementedError default."""

        class NoLogsDeployer(BaseDeployer):
            def deploy(self, **kwargs):  # type: ignore[override]
                raise AssertionError("not called")

            def get_status(self, resource_id: str):  # type: ignore[override]
                raise AssertionError("not called")

            def destroy(self, resource_id: str) -> None:
                return None

        with pytest.raises(NotImplementedError, match="NoLogsDeployer"):
            NoLogsDeployer().stream_logs("p-func1")

    def test_base_deployer_method_signatures(self) -> None:
        """Test deploy takes keyword-only function parameters."""
        deploy_params = inspect.signature(BaseDeployer.deploy).parameters

        for name in ("resource_id", "entry_point", "runtime", "source_dir", "trigger"):
            assert name in deploy_params
            assert (
                deploy_params[name].kind == inspect.Parameter.KEYWORD_ONLY
            ), f"{name} must be keyword-only"

        assert deploy_params["trigger"].default == TriggerKind.HTTP

        for method in (BaseDeployer.get_status, BaseDeployer.destroy):
            assert "resource_id" in inspect.signature(method).parameters

    def test_base_deployer_missing_method_validation(self) -> None:
        """Test abstract methods are required for subclasses."""

        class IncompleteDeployer(BaseDeployer):
            def destroy(self, resource_id: str) -> None:
                return None

        with pytest.raises(TypeError):
            IncompleteDeployer()  # type: ignore[abstract]

    def test_in_memory_deployer_satisfies_interface(self, deployer) -> None:
        """The shared test deployer is a complete BaseDeployer."""
        assert isinstance(deployer, BaseDeployer)


class TestCreateDeployer:
    """Tests for the deployer factory."""

    def test_create_deployer_returns_gcloud_deployer(
        self, monkeypatch: pytest.MonkeyPatch, make_descriptor
    ) -> None:
        from funcstage.deploy.deployers.gcloud_functions import (
            GCloudFunctionsDeployer,
        )
        from funcstage.models.function import ProjectConfig

        monkeypatch.setattr(
            "funcstage.deploy.deployers.gcloud_functions.shutil.which",
            lambda name: f"/usr/bin/{name}",
        )
        config = ProjectConfig(functions=[make_descriptor("func1")])

        assert isinstance(create_deployer(config), GCloudFunctionsDeployer)
