"""
pgBackRest dispatcher.

Composes a pgbackrest command from environment configuration and runs it in
the database container of a cluster pod.
"""
from enum import Enum
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgstorage.config.logging import get_logger
from pgstorage.exceptions import BackrestError, OrchestrationError
from pgstorage.services.kube_client import KubeClient

logger = get_logger(__name__)

BACKREST_BINARY = "pgbackrest"
DATABASE_CONTAINER = "database"
REPO_TYPE_S3_FLAG = "--repo-type=s3"


class BackrestCommand(str, Enum):
    """pgbackrest subcommands the dispatcher may run."""

    STANZA_CREATE = "stanza-create"
    INFO = "info"
    BACKUP = "backup"


class BackrestSettings(BaseSettings):
    """Dispatcher configuration, read from the job's environment."""

    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    namespace: str = Field(default="", alias="NAMESPACE", description="Namespace of the target pod")
    command: str = Field(default="", alias="COMMAND", description="pgbackrest subcommand")
    command_opts: str = Field(default="", alias="COMMAND_OPTS", description="Extra pgbackrest options")
    pod_name: str = Field(default="", alias="PODNAME", description="Pod to run the command in")
    repo_type: str = Field(default="", alias="PGBACKREST_REPO_TYPE", description="Repository type (posix/s3)")
    local_s3_storage: bool = Field(
        default=False,
        alias="PGHA_PGBACKREST_LOCAL_S3_STORAGE",
        description="Run the command against both the local and the s3 repository",
    )
    debug: bool = Field(default=False, alias="CRUNCHY_DEBUG", description="Enable debug logging")

    @field_validator("local_s3_storage", "debug", mode="before")
    @classmethod
    def parse_flag(cls, v):
        """Anything that is not a recognised true value counts as false."""
        if isinstance(v, str):
            return v.strip().lower() in ("1", "t", "true", "yes", "on")
        return bool(v)

    def missing(self) -> List[str]:
        """Names of required variables that are not set."""
        required = {"NAMESPACE": self.namespace, "COMMAND": self.command, "PODNAME": self.pod_name}
        return [name for name, value in required.items() if not value]


def build_backrest_command(
    command: str,
    command_opts: str = "",
    repo_type: str = "",
    local_s3_storage: bool = False,
) -> str:
    """
    Compose the shell command line for a pgbackrest run.

    With local_s3_storage the command runs twice, the second time against the
    s3 repository. Otherwise repo_type "s3" adds the s3 flag to the single run.

    Raises:
        BackrestError: If command is not a supported subcommand
    """
    try:
        subcommand = BackrestCommand(command)
    except ValueError:
        raise BackrestError(
            f"unsupported backup command specified {command}",
            details={"command": command, "supported": [c.value for c in BackrestCommand]},
        )

    parts = [BACKREST_BINARY, subcommand.value]
    if command_opts:
        parts.append(command_opts)

    if local_s3_storage:
        parts = parts + ["&&"] + parts + [REPO_TYPE_S3_FLAG]
        logger.info("backrest_command_for_local_and_s3_storage")
    elif repo_type == "s3":
        parts.append(REPO_TYPE_S3_FLAG)
        logger.info("backrest_s3_flag_enabled")

    return " ".join(parts)


def run_backrest(kube: KubeClient, backrest_settings: BackrestSettings) -> str:
    """
    Run the configured pgbackrest command in the target pod.

    Returns:
        Captured stdout

    Raises:
        BackrestError: On missing configuration or a failed command
    """
    missing = backrest_settings.missing()
    if missing:
        raise BackrestError(
            f"{', '.join(missing)} env var not set",
            details={"missing": missing},
        )

    command_line = build_backrest_command(
        backrest_settings.command,
        backrest_settings.command_opts,
        backrest_settings.repo_type,
        backrest_settings.local_s3_storage,
    )
    logger.info(
        "backrest_command_executing",
        command=command_line,
        pod=backrest_settings.pod_name,
        namespace=backrest_settings.namespace,
    )

    try:
        stdout, stderr, returncode = kube.exec_in_pod(
            backrest_settings.namespace,
            backrest_settings.pod_name,
            DATABASE_CONTAINER,
            ["bash", "-c", command_line],
        )
    except OrchestrationError as e:
        raise BackrestError(e.message, details=e.details)

    logger.info("backrest_command_output", stdout=stdout, stderr=stderr, returncode=returncode)
    if returncode != 0:
        raise BackrestError(
            f"command exited with code {returncode}",
            details={"command": command_line, "stderr": stderr, "returncode": returncode},
        )
    return stdout

