"""Function platform deployers for funcstage."""

from __future__ import annotations

from funcstage.deploy.deployers.base import BaseDeployer
from funcstage.models.function import ProjectConfig


def create_deployer(config: ProjectConfig) -> BaseDeployer:
    """Create the platform deployer for a project configuration."""
    from funcstage.deploy.deployers.gcloud_functions import GCloudFunctionsDeployer

    return GCloudFunctionsDeployer(config)


__all__ = ["BaseDeployer", "create_deployer"]
