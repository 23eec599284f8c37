"""
Entry point of the pgo-backrest job.

Reads NAMESPACE, PODNAME, COMMAND and COMMAND_OPTS from the environment and
runs the matching pgbackrest command inside the cluster's database container.

Usage:
    NAMESPACE=pgo PODNAME=hippo-backrest-shared-repo-0 COMMAND=backup pgo-backrest
"""
import sys

from kubernetes.config import ConfigException

from pgstorage.config.logging import configure_logging, get_logger
from pgstorage.config.settings import settings
from pgstorage.exceptions import BackrestError
from pgstorage.services.backrest import BackrestSettings, run_backrest
from pgstorage.services.kube_client import KubeClient

logger = get_logger(__name__)


def main() -> int:
    """Run the configured backrest command. Returns the process exit code."""
    backrest_settings = BackrestSettings()
    configure_logging("DEBUG" if backrest_settings.debug else None)

    logger.info("pgo_backrest_starts", debug=backrest_settings.debug)
    logger.debug(
        "pgo_backrest_configuration",
        namespace=backrest_settings.namespace,
        command=backrest_settings.command,
        command_opts=backrest_settings.command_opts,
        pod_name=backrest_settings.pod_name,
        repo_type=backrest_settings.repo_type,
        local_s3_storage=backrest_settings.local_s3_storage,
    )

    try:
        kube = KubeClient.from_settings(settings)
        run_backrest(kube, backrest_settings)
    except ConfigException as e:
        logger.error("kubernetes_configuration_failed", error=str(e))
        return 2
    except BackrestError as e:
        logger.error("pgo_backrest_failed", error=e.message, details=e.details)
        return 2

    logger.info("pgo_backrest_ends")
    return 0


if __name__ == "__main__":
    sys.exit(main())
