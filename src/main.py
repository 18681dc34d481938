"""Main entry point module.

Handles CLI arguments, logging setup, signal handling, and wires the
sampler to the optional ConfigMap store.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, List, Optional

import config as config_module
import configmap_store
import kube_client
import sampler


logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for the application.

    Log lines go to stderr so stdout carries only placement records.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser.

    Flags default to None so that only flags actually given override the
    configuration file.
    """
    parser = argparse.ArgumentParser(
        description="Record which node each pod runs on"
    )
    parser.add_argument("--config", help="Path to configuration YAML file")
    parser.add_argument("--kubeconfig", help="Path to the kubeconfig file")
    parser.add_argument("--context", help="kubeconfig context to use")
    parser.add_argument(
        "--interval", help="Interval between pod checks, e.g. 30s, 5m or 1m30s (default: 30s)"
    )
    parser.add_argument(
        "--oneshot", action="store_true", default=None, help="Run only once and exit"
    )
    parser.add_argument(
        "--namespace", help="Filter pods by namespace (default: all namespaces)"
    )
    parser.add_argument("--name", help="Filter pods by name prefix")
    parser.add_argument(
        "--label", help="Filter pods by label selector (e.g. 'app=nginx,env=prod')"
    )
    parser.add_argument(
        "--store",
        action="store_true",
        default=None,
        help="Record pod-to-node mappings in hourly ConfigMaps",
    )
    parser.add_argument(
        "--store-namespace", help="Namespace for the hourly ConfigMaps (default: default)"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def load_settings(args: argparse.Namespace) -> config_module.Config:
    """Load the configuration file (if any) and apply command line overrides.

    Raises:
        ConfigError: If the file or any flag value is invalid
    """
    if args.config:
        cfg = config_module.load_config(args.config)
        logger.info(f"Configuration loaded from {args.config}")
    else:
        cfg = config_module.default_config()

    return config_module.apply_overrides(
        cfg,
        kubeconfig=args.kubeconfig,
        context=args.context,
        interval=args.interval,
        oneshot=args.oneshot,
        namespace=args.namespace,
        name_prefix=args.name,
        label_selector=args.label,
        store_enabled=args.store,
        store_namespace=args.store_namespace,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for clean shutdown)
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(log_level)

    try:
        cfg = load_settings(args)
    except config_module.ConfigError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        core_api = kube_client.build_core_api(cfg.kubernetes)
    except Exception as e:
        logger.error(f"Error building Kubernetes client config: {e}")
        return 1

    context = kube_client.context_name(cfg.kubernetes)
    if context:
        logger.info(f"Using kubeconfig context {context}")

    store = None
    if cfg.store.enabled:
        store = configmap_store.PartitionedStore(
            core_api, cfg.store.namespace, prefix=cfg.store.prefix
        )
        logger.info(
            f"Recording pod-to-node mappings in namespace {cfg.store.namespace} "
            f"(ConfigMaps {cfg.store.prefix}-YYYYMMDDHH)"
        )

    sampler_cfg = cfg.sampler
    if sampler_cfg.namespace or sampler_cfg.name_prefix or sampler_cfg.label_selector:
        logger.info(
            f"Using pod filters: namespace={sampler_cfg.namespace!r}, "
            f"name_prefix={sampler_cfg.name_prefix!r}, "
            f"label_selector={sampler_cfg.label_selector!r}"
        )

    pod_sampler = sampler.Sampler(sampler_cfg, core_api, store=store)

    if sampler_cfg.oneshot:
        try:
            pod_sampler.run_once()
        except sampler.SamplerError as e:
            logger.error(f"Failed to run pod sampler: {e}")
            return 1
        return 0

    shutdown_event = threading.Event()

    def handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logger.info(f"Starting pod-ashiato sampler (interval: {sampler_cfg.interval_seconds}s)")
    pod_sampler.run(shutdown_event)
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
