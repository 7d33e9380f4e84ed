"""CLI entrypoint for the machine reconciler."""

import sys

import structlog
import typer

from .config import get_settings
from .kubernetes_client import KubernetesClient
from .models import NotRunning, ReconcileError
from .reconciler import MachineReconciler
from .session import SessionProvider

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_RUNNING = 2

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

app = typer.Typer(
    name="machine-reconciler",
    help="Record Proxmox VM addresses on Cluster API machines",
    add_completion=False,
)


@app.callback()
def main() -> None:
    """Machine address reconciler."""


@app.command()
def reconcile(
    cluster: str = typer.Option(..., help="Cluster name"),
    machine: str = typer.Option(..., help="Machine name"),
    namespace: str = typer.Option("default", help="Namespace of the Cluster and Machine"),
) -> None:
    """Run a single reconciliation pass for one Machine."""
    logger.info("Starting reconciliation", namespace=namespace, cluster=cluster, machine=machine)

    try:
        settings = get_settings()
        k8s = KubernetesClient(settings)
        reconciler = MachineReconciler(settings, k8s, SessionProvider(settings))

        cluster_obj = k8s.get_cluster(namespace, cluster)
        machine_obj = k8s.get_machine(namespace, machine)
        result = reconciler.reconcile(cluster_obj, machine_obj)
    except NotRunning as e:
        logger.warning("Machine not running, retry later", machine=machine, error=str(e))
        raise typer.Exit(code=EXIT_NOT_RUNNING)
    except ReconcileError as e:
        logger.error(
            "Reconciliation failed", machine=machine, error_type=type(e).__name__, error=str(e)
        )
        raise typer.Exit(code=EXIT_ERROR)
    except Exception as e:
        logger.exception("Reconciliation failed with error", machine=machine, error=str(e))
        raise typer.Exit(code=EXIT_ERROR)

    logger.info(
        "Reconciliation complete",
        machine=machine,
        outcome=result.outcome.value,
        address=result.address,
        message=result.message,
    )


if __name__ == "__main__":
    sys.exit(app())
