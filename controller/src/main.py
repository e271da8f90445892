"""
Shipline Controller - Main entry point.
"""

import logging
import sys

from controller.src.config import get_settings
from controller.src.services.preflight import check_tools
from controller.src.worker import run_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

def main():
    """Main entry point."""
    settings = get_settings()

    logger.info("Starting Shipline Controller")
    logger.info(f"Step runner: {settings.step_runner}")
    logger.info(f"Credential store: {settings.credential_store}")
    logger.info(f"Redis URL: {settings.redis_url}")

    if settings.step_runner == "kubernetes":
        from controller.src.k8s.client import init_k8s_client, ensure_namespace

        logger.info(f"Kubernetes namespace: {settings.k8s_namespace}")
        if not init_k8s_client():
            logger.error("Failed to initialize Kubernetes client")
            sys.exit(1)

        try:
            ensure_namespace()
        except Exception as e:
            logger.error(f"Failed to ensure namespace: {e}")
            sys.exit(1)
    else:
        check_tools(settings.required_tools)

    # Start worker
    logger.info("Starting worker...")
    run_worker()

if __name__ == "__main__":
    main()
