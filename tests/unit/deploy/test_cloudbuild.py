"""Unit tests for Cloud Build config generation, substitution and submission.

Tests cover:
- Deploy and delete config generation with ${_PREFIX}
- Substitution binding rules for user and built-in variables
- YAML rendering and loading
- gcloud builds submit command construction and result parsing
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from funcstage.deploy.cloudbuild import (
    CLOUD_SDK_IMAGE,
    BuildConfig,
    BuildStep,
    build_submit_command,
    generate_delete_config,
    generate_deploy_config,
    load_build_config,
    render_build_config,
    submit_build,
    substitute,
    substitute_text,
    validate_substitutions,
    write_build_config,
)
from funcstage.lib.errors import (
    CloudSDKNotInstalledError,
    ConfigError,
    DeploymentError,
    SubstitutionError,
)
from funcstage.models.function import ProjectConfig

EXAMPLES_DIR = Path(__file__).resolve().parents[3] / "examples"


@pytest.fixture
def config(make_descriptor) -> ProjectConfig:
    return ProjectConfig(functions=[make_descriptor("func1"), make_descriptor("func2")])


class TestGenerateDeployConfig:
    """Tests for generate_deploy_config."""

    def test_one_step_per_function(self, config: ProjectConfig, tmp_path: Path) -> None:
        build = generate_deploy_config(config, tmp_path)

        assert [step.id for step in build.steps] == ["deploy-func1", "deploy-func2"]
        step = build.steps[0]
        assert step.name == CLOUD_SDK_IMAGE
        assert step.entrypoint == "gcloud"
        assert step.args[:3] == ["functions", "deploy", "${_PREFIX}-func1"]
        assert "--runtime=python312" in step.args
        assert "--entry-point=hello_http" in step.args
        assert "--trigger-http" in step.args
        assert "--allow-unauthenticated" in step.args
        assert step.args[-1] == "--source=."
        assert step.dir == "autodeploy"
        assert step.wait_for is None

    def test_parallel_steps_start_immediately(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        build = generate_deploy_config(config, tmp_path, parallel=True)

        assert all(step.wait_for == ["-"] for step in build.steps)

    def test_subset_of_descriptors(self, config: ProjectConfig, tmp_path: Path) -> None:
        descriptors = config.select(["func2"])

        build = generate_deploy_config(config, tmp_path, descriptors=descriptors)

        assert [step.id for step in build.steps] == ["deploy-func2"]

    def test_source_outside_upload_dir(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        other = tmp_path / "elsewhere"
        other.mkdir()

        with pytest.raises(ConfigError, match="outside"):
            generate_deploy_config(config, other)

    def test_memory_and_env_vars(self, make_descriptor, tmp_path: Path) -> None:
        config = ProjectConfig(
            memory="512Mi",
            env_vars={"B": "2", "A": "1"},
            functions=[make_descriptor("func1")],
        )

        args = generate_deploy_config(config, tmp_path).steps[0].args

        assert "--memory=512Mi" in args
        assert "--set-env-vars=A=1,B=2" in args


class TestGenerateDeleteConfig:
    """Tests for generate_delete_config."""

    def test_one_quiet_delete_per_function(self, config: ProjectConfig) -> None:
        build = generate_delete_config(config)

        assert [step.id for step in build.steps] == ["delete-func1", "delete-func2"]
        assert build.steps[1].args == [
            "functions",
            "delete",
            "${_PREFIX}-func2",
            "--region=us-central1",
            "--gen2",
            "--quiet",
        ]
        assert all(step.dir is None for step in build.steps)

    def test_delete_steps_tolerate_absent_functions(
        self, config: ProjectConfig
    ) -> None:
        rendered = yaml.safe_load(render_build_config(generate_delete_config(config)))

        assert all(step["allowFailure"] is True for step in rendered["steps"])

    def test_deploy_steps_stop_the_build_on_failure(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        rendered = yaml.safe_load(
            render_build_config(generate_deploy_config(config, tmp_path))
        )

        assert all("allowFailure" not in step for step in rendered["steps"])


    def test_explicit_names(self, config: ProjectConfig) -> None:
        build = generate_delete_config(config, names=["old"])

        assert build.steps[0].args[2] == "${_PREFIX}-old"


class TestSubstitution:
    """Tests for substitution binding."""

    def test_prefix_bound_in_every_step(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        generated = generate_deploy_config(config, tmp_path)

        build = substitute(generated, {"_PREFIX": "pr-7"})

        assert [step.args[2] for step in build.steps] == ["pr-7-func1", "pr-7-func2"]
        assert not any("${" in arg for step in build.steps for arg in step.args)
        assert build.substitutions is None

    def test_built_ins_left_for_the_service(self) -> None:
        text = substitute_text(
            "gs://$PROJECT_ID/${_PREFIX}/${BUILD_ID}", {"_PREFIX": "p"}
        )

        assert text == "gs://$PROJECT_ID/p/${BUILD_ID}"

    def test_bound_built_in_is_replaced(self) -> None:
        assert substitute_text("$PROJECT_ID", {"PROJECT_ID": "demo"}) == "demo"

    def test_unbraced_user_variable(self) -> None:
        assert substitute_text("$_PREFIX-func1", {"_PREFIX": "p"}) == "p-func1"

    def test_escaped_dollar(self) -> None:
        assert substitute_text("echo $$HOME", {}) == "echo $HOME"

    def test_unbound_user_variable_raises(self) -> None:
        with pytest.raises(SubstitutionError) as exc_info:
            substitute_text("${_PREFIX}-func1", {})

        assert exc_info.value.variable == "_PREFIX"

    def test_config_defaults_are_overridden(self) -> None:
        build = BuildConfig(
            steps=[BuildStep(name="alpine", args=["echo", "${_GREETING}"])],
            substitutions={"_GREETING": "hello"},
        )

        assert substitute(build, {}).steps[0].args == ["echo", "hello"]
        assert substitute(build, {"_GREETING": "yo"}).steps[0].args == ["echo", "yo"]

    def test_invalid_user_key(self) -> None:
        with pytest.raises(SubstitutionError, match="underscore"):
            validate_substitutions({"prefix": "p"})

    def test_built_in_key_accepted(self) -> None:
        validate_substitutions({"PROJECT_ID": "demo", "_PREFIX": "p"})


class TestYaml:
    """Tests for rendering and loading build configs."""

    def test_render_uses_cloud_build_field_names(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        rendered = render_build_config(
            generate_delete_config(config, parallel=True)
        )
        data = yaml.safe_load(rendered)

        assert data["steps"][0]["waitFor"] == ["-"]
        assert "wait_for" not in data["steps"][0]
        assert "substitutions" not in data

    def test_write_and_load(self, config: ProjectConfig, tmp_path: Path) -> None:
        path = write_build_config(
            generate_deploy_config(config, tmp_path),
            tmp_path / "out" / "cloudbuild.yaml",
        )

        loaded = load_build_config(path)

        assert loaded == generate_deploy_config(config, tmp_path)

    def test_load_invalid_config(self, tmp_path: Path) -> None:
        path = tmp_path / "cloudbuild.yaml"
        path.write_text("steps: []\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_build_config(path)

        assert exc_info.value.field == "build_config"

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_build_config(tmp_path / "missing.yaml")

    def test_load_keeps_unmodelled_cloud_build_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "cloudbuild.yaml"
        path.write_text(
            "steps:\n"
            "- name: gcr.io/google.com/cloudsdktool/cloud-sdk\n"
            "  entrypoint: bash\n"
            "  args: ['-c', 'echo ${_PREFIX}']\n"
            "  allowFailure: true\n"
            "  allowExitCodes: [1]\n"
            "  env: ['STAGE=${_PREFIX}']\n"
            "  secretEnv: ['TOKEN']\n"
            "  timeout: 300s\n"
            "- name: alpine\n"
            "  script: echo $_PREFIX\n"
            "availableSecrets:\n"
            "  secretManager:\n"
            "  - versionName: projects/$PROJECT_ID/secrets/token/versions/latest\n"
            "    env: TOKEN\n"
            "serviceAccount: projects/demo/serviceAccounts/build@demo.iam\n"
            "options:\n"
            "  logging: CLOUD_LOGGING_ONLY\n"
            "  env: ['A=b']\n",
            encoding="utf-8",
        )

        build = substitute(load_build_config(path), {"_PREFIX": "p"})
        data = yaml.safe_load(render_build_config(build))

        first, second = data["steps"]
        assert first["allowFailure"] is True
        assert first["allowExitCodes"] == [1]
        assert first["env"] == ["STAGE=p"]
        assert first["secretEnv"] == ["TOKEN"]
        assert first["timeout"] == "300s"
        assert first["args"] == ["-c", "echo p"]
        assert second["script"] == "echo p"
        assert data["availableSecrets"]["secretManager"][0]["env"] == "TOKEN"
        assert data["serviceAccount"].endswith("build@demo.iam")
        assert data["options"]["env"] == ["A=b"]


    @pytest.mark.parametrize("name", ["cloudbuild.yaml", "cloudbuilddelete.yaml"])
    def test_shipped_examples_bind_prefix(self, name: str) -> None:
        shipped = load_build_config(EXAMPLES_DIR / name)

        build = substitute(shipped, {"_PREFIX": "myprefix"})

        assert [step.args[2] for step in build.steps] == [
            "myprefix-func1",
            "myprefix-func2",
        ]

    def test_shipped_delete_example_tolerates_absent_functions(self) -> None:
        shipped = load_build_config(EXAMPLES_DIR / "cloudbuilddelete.yaml")

        assert all(step.allow_failure for step in shipped.steps)


class TestSubmit:
    """Tests for build_submit_command and submit_build."""

    def test_deploy_command_uploads_source(self, tmp_path: Path) -> None:
        cmd = build_submit_command(
            tmp_path / "cloudbuild.yaml",
            {"_PREFIX": "myprefix"},
            source_dir=tmp_path,
            project="demo-project",
        )

        assert cmd == [
            "gcloud",
            "builds",
            "submit",
            f"--config={tmp_path / 'cloudbuild.yaml'}",
            "--substitutions=_PREFIX=myprefix",
            "--project=demo-project",
            str(tmp_path),
        ]

    def test_delete_command_has_no_source(self, tmp_path: Path) -> None:
        cmd = build_submit_command(
            tmp_path / "cloudbuilddelete.yaml", {"_PREFIX": "p"}, no_source=True
        )

        assert cmd[-1] == "--no-source"

    def test_submit_build_parses_build_id(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        path = write_build_config(
            generate_delete_config(config), tmp_path / "cloudbuilddelete.yaml"
        )
        output = (
            "Created [https://cloudbuild.googleapis.com/v1/projects/demo/locations/"
            "global/builds/0f1e2d3c-4b5a-6978-8695-a4b3c2d1e0f9].\n"
            "DONE\n"
        )
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="", stderr=output
        )

        with (
            patch(
                "funcstage.deploy.cloudbuild.shutil.which",
                return_value="/usr/bin/gcloud",
            ),
            patch(
                "funcstage.deploy.cloudbuild.subprocess.run", return_value=completed
            ) as mock_run,
        ):
            submission = submit_build(path, {"_PREFIX": "p"}, no_source=True)

        assert submission.build_id == "0f1e2d3c-4b5a-6978-8695-a4b3c2d1e0f9"
        assert mock_run.call_args.args[0][0] == "/usr/bin/gcloud"
        assert "DONE" in submission.log_lines

    def test_submit_build_failure(self, config: ProjectConfig, tmp_path: Path) -> None:
        path = write_build_config(
            generate_delete_config(config), tmp_path / "cloudbuilddelete.yaml"
        )
        completed = subprocess.CompletedProcess(
            args=[], returncode=1, stdout="", stderr="ERROR: build step 0 failed"
        )

        with (
            patch(
                "funcstage.deploy.cloudbuild.shutil.which",
                return_value="/usr/bin/gcloud",
            ),
            patch("funcstage.deploy.cloudbuild.subprocess.run", return_value=completed),
        ):
            with pytest.raises(DeploymentError, match="build step 0 failed"):
                submit_build(path, {"_PREFIX": "p"}, no_source=True)

    def test_submit_build_rejects_unbound_prefix(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        path = write_build_config(
            generate_delete_config(config), tmp_path / "cloudbuilddelete.yaml"
        )

        with patch("funcstage.deploy.cloudbuild.subprocess.run") as mock_run:
            with pytest.raises(SubstitutionError):
                submit_build(path, {}, no_source=True)

        mock_run.assert_not_called()

    def test_submit_build_without_gcloud(
        self, config: ProjectConfig, tmp_path: Path
    ) -> None:
        path = write_build_config(
            generate_delete_config(config), tmp_path / "cloudbuilddelete.yaml"
        )

        with patch("funcstage.deploy.cloudbuild.shutil.which", return_value=None):
            with pytest.raises(CloudSDKNotInstalledError):
                submit_build(path, {"_PREFIX": "p"}, no_source=True)
