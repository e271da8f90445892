"""
Check that the external tools steps shell out to are installed.
"""

import logging
import shutil
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

def check_tools(tools: Iterable[str]) -> Dict[str, Optional[str]]:
    """Map each tool to its resolved path, or None when missing."""
    found = {}
    for tool in tools:
        path = shutil.which(tool)
        found[tool] = path
        if path:
            logger.info(f"Found {tool}: {path}")
        else:
            logger.warning(f"{tool} not found on PATH; steps using it will fail")
    return found
