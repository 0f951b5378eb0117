"""Default configuration values for funcstage."""

DEFAULT_CONFIG_FILENAME = "funcstage.yaml"

# Environment variables overriding funcstage.yaml values
PREFIX_ENV_VAR = "FUNCSTAGE_PREFIX"
ENV_VAR_MAP: dict[str, str] = {
    "project": "FUNCSTAGE_PROJECT",
    "region": "FUNCSTAGE_REGION",
    "max_workers": "FUNCSTAGE_MAX_WORKERS",
    "fail_fast": "FUNCSTAGE_FAIL_FAST",
}

# Keys from ENV_VAR_MAP that live under the execution section
EXECUTION_KEYS = frozenset({"max_workers", "fail_fast"})
