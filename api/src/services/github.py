"""
GitHub service for webhook validation and repo operations.
"""

import hmac
import hashlib
import logging
import shutil
import tempfile
import subprocess
import os
from typing import Optional, Dict, Any

import yaml

from api.src.config import get_settings
from api.src.services.pipeline_parser import PipelineConfigError

logger = logging.getLogger(__name__)

settings = get_settings()

PIPELINE_FILES = [
    ".shipline.yml",
    ".shipline.yaml",
    "shipline.yml",
    "shipline.yaml",
]

class RepositoryError(Exception):
    """Raised when a repository cannot be cloned."""
    pass

def verify_signature(payload: bytes, signature: str) -> bool:
    """Verify GitHub webhook signature."""
    if not settings.github_webhook_secret:
        # Skip verification if no secret configured (development)
        return True

    expected = "sha256=" + hmac.new(
        settings.github_webhook_secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature or "")

async def clone_repository(clone_url: str, commit_sha: str, branch: Optional[str] = None) -> str:
    """
    Clone repository to temporary directory.
    Returns path to cloned repo.
    """
    temp_dir = tempfile.mkdtemp(prefix="shipline_")
    repo_path = os.path.join(temp_dir, "repo")

    command = ["git", "clone", "--depth", "1"]
    if branch:
        command.extend(["--branch", branch])
    command.extend([clone_url, repo_path])

    try:
        subprocess.run(command, check=True, capture_output=True, timeout=120)

        # Checkout specific commit if provided
        if commit_sha:
            subprocess.run(
                ["git", "fetch", "--depth", "1", "origin", commit_sha],
                cwd=repo_path,
                capture_output=True,
                timeout=60
            )
            subprocess.run(
                ["git", "checkout", commit_sha],
                cwd=repo_path,
                check=True,
                capture_output=True,
                timeout=30
            )

        return repo_path
    except subprocess.TimeoutExpired:
        cleanup_repo(repo_path)
        raise RepositoryError("Repository clone timed out")
    except subprocess.CalledProcessError as e:
        cleanup_repo(repo_path)
        raise RepositoryError(f"Failed to clone repository: {e.stderr.decode(errors='replace')}")

def load_yaml_file(path: str) -> Optional[Dict[str, Any]]:
    with open(path, "r") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PipelineConfigError(f"Invalid YAML in {os.path.basename(path)}: {e}")

async def fetch_pipeline_config(repo_path: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Read the pipeline file from the repository, falling back to the
    server's default pipeline file.
    Returns parsed config or None if neither exists.
    """
    if repo_path:
        for filename in PIPELINE_FILES:
            config_path = os.path.join(repo_path, filename)
            if os.path.exists(config_path):
                return load_yaml_file(config_path)

    if settings.default_pipeline_file and os.path.exists(settings.default_pipeline_file):
        logger.info(f"Using default pipeline {settings.default_pipeline_file}")
        return load_yaml_file(settings.default_pipeline_file)

    return None

def parse_webhook_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Extract relevant info from GitHub webhook payload."""
    repo = payload.get("repository") or {}
    head_commit = payload.get("head_commit") or {}

    # Get branch from ref (refs/heads/main -> main)
    ref = payload.get("ref", "")
    branch = ref.replace("refs/heads/", "") if ref.startswith("refs/heads/") else ref

    return {
        "repo_name": repo.get("name", ""),
        "repo_full_name": repo.get("full_name", ""),
        "clone_url": repo.get("clone_url", ""),
        "commit_sha": head_commit.get("id", payload.get("after", "")),
        "branch": branch,
        "commit_message": head_commit.get("message", ""),
        "pusher": (payload.get("pusher") or {}).get("name", ""),
        "deleted": bool(payload.get("deleted", False)),
    }

def cleanup_repo(repo_path: str):
    """Clean up cloned repository."""
    if repo_path:
        # Remove the parent temp directory
        shutil.rmtree(os.path.dirname(repo_path), ignore_errors=True)
