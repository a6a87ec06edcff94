#!/usr/bin/env python3
"""
Pod Label Controller - Entry Point

Watches Pods and keeps the label-controller/* labels in sync with each
pod's label-controller/add-label annotation.

Usage:
    python run.py [--namespace NAMESPACE] [--dry-run] [--in-cluster] [--workers N]
"""

import argparse
import logging
import sys

from kubernetes import client, config

from label_controller.config import DEFAULT_WORKERS
from label_controller.controller import LabelController
from label_controller.store import DryRunPodStore, PodStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Pod Label Controller - Sync derived labels from the add-label annotation"
    )
    parser.add_argument(
        "--namespace", "-n",
        default="",
        help="Namespace to watch (default: all namespaces)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in dry-run mode (no changes made)"
    )
    parser.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Number of reconcile workers (default: {DEFAULT_WORKERS})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )
    return parser


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.workers < 1:
        logger.error("--workers must be at least 1")
        sys.exit(2)

    # Set log level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load Kubernetes configuration
    try:
        if args.in_cluster:
            config.load_incluster_config()
            logger.info("Loaded in-cluster configuration")
        else:
            config.load_kube_config()
            logger.info("Loaded kubeconfig from default location")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        sys.exit(1)

    v1 = client.CoreV1Api()
    store = DryRunPodStore(v1) if args.dry_run else PodStore(v1)
    if args.dry_run:
        logger.info("Dry run: pods will not be modified")

    # Create and run controller
    controller = LabelController(
        namespace=args.namespace,
        store=store,
        workers=args.workers,
        v1=v1
    )

    # run() handles Ctrl+C itself and returns after stopping
    try:
        controller.run()
    except Exception as e:
        logger.error(f"Controller error: {e}")
        sys.exit(1)
    logger.info("Controller stopped")


if __name__ == "__main__":
    main()
