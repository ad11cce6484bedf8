"""
Entry point for the kube_lb_sync package.

Usage: python -m kube_lb_sync [--tmpl-file config.tmpl] [--config-file config.conf]
                              [--reload-script ./reload.sh] [--sync-period 10] [-v]

Every flag has an environment variable counterpart (see config.py).
"""

import sys
from typing import List, Optional

from .applier import ConfigApplier
from .candidate_builder import CandidateBuilder
from .config import Config, setup_logging
from .errors import KubeconfigError, QueryError
from .kube_client import ClusterClient
from .sync import Reconciler


def main(argv: Optional[List[str]] = None) -> int:
    config = Config.from_args(argv)
    logger = setup_logging(config.verbose)
    logger.debug("main: application starting")

    logger.info("=" * 60)
    logger.info("kube-lb-sync")
    logger.info(f"  kubeconfig:       {config.kubeconfig}")
    logger.info(f"  template:         {config.template_file}")
    logger.info(f"  config file:      {config.config_file}")
    logger.info(f"  reload script:    {config.reload_script}")
    logger.info(f"  sync period:      {config.sync_period}s")
    logger.info(f"  reload timeout:   {config.reload_timeout or 'none'}")
    logger.info(f"  fetch retries:    {config.fetch_retries} (backoff {config.fetch_backoff}s)")
    logger.info(f"  change detection: {config.change_detection}")
    logger.info("=" * 60)

    try:
        client = ClusterClient.from_config(config)
    except KubeconfigError as e:
        logger.critical(f"Failed to create client: {e}")
        return 1

    builder = CandidateBuilder(client)
    applier = ConfigApplier.from_config(config)
    reconciler = Reconciler(config, client, builder, applier)

    try:
        reconciler.run()
    except QueryError as e:
        logger.critical(f"Initial reconciliation failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
