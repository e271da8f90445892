"""
Pipeline YAML parser and validator.
"""

import yaml
from fnmatch import fnmatchcase
from typing import List, Dict, Any, Optional

KNOWN_ACTIONS = {
    "checkout",
    "docker/build",
    "docker/login",
    "docker/push",
    "aws/update-kubeconfig",
    "helm/upgrade-install",
}

DEFAULT_STEP_TIMEOUT = 600  # 10 min

DEFAULT_NOTIFICATIONS = {
    "success": "Pipeline succeeded",
    "failure": "Pipeline failed",
}

class PipelineConfigError(Exception):
    """Raised when pipeline configuration is invalid."""
    pass

def parse_pipeline_config(yaml_content: str, default_branches: Optional[List[str]] = None) -> Dict[str, Any]:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Invalid YAML: {e}")

    return validate_config(config, default_branches)

def parse_pipeline_dict(config: Dict[str, Any], default_branches: Optional[List[str]] = None) -> Dict[str, Any]:
    """Validate pipeline configuration from dict."""
    return validate_config(config, default_branches)

def branch_matches(branch: str, patterns: List[str]) -> bool:
    """Empty filter matches every branch; entries may be glob patterns."""
    if not patterns:
        return True
    return any(branch == p or fnmatchcase(branch, p) for p in patterns)

def should_trigger(config: Dict[str, Any], branch: str) -> bool:
    """Whether a push to `branch` starts a run of a validated pipeline."""
    return branch_matches(branch, config.get("trigger_branches", []))

def _validate_branches(value: Any, where: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(b, str) for b in value):
        raise PipelineConfigError(f"{where} 'branches' must be a list of strings")
    return value

def _validate_env(value: Any, where: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PipelineConfigError(f"{where} 'env' must be a mapping")
    env = {}
    for key, val in value.items():
        if not isinstance(key, str):
            raise PipelineConfigError(f"{where} env keys must be strings")
        if isinstance(val, (dict, list)) or val is None:
            raise PipelineConfigError(f"{where} env '{key}' must be a scalar")
        env[key] = str(val).lower() if isinstance(val, bool) else str(val)
    return env

def _validate_credentials(value: Any, where: str) -> List[Dict[str, str]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PipelineConfigError(f"{where} 'credentials' must be a list")

    bindings = []
    for j, binding in enumerate(value):
        if not isinstance(binding, dict) or not isinstance(binding.get("id"), str):
            raise PipelineConfigError(f"{where} credential {j} needs a string 'id'")
        bindings.append({
            "id": binding["id"],
            "username_variable": str(binding.get("username_variable", "USERNAME")),
            "password_variable": str(binding.get("password_variable", "PASSWORD")),
        })
    return bindings

def validate_config(config: Optional[Dict[str, Any]], default_branches: Optional[List[str]] = None) -> Dict[str, Any]:
    """Validate pipeline configuration structure."""
    if not config:
        raise PipelineConfigError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise PipelineConfigError("Pipeline configuration must be a dictionary")

    # Validate name (optional but recommended)
    name = config.get("name", "Unnamed Pipeline")
    if not isinstance(name, str):
        raise PipelineConfigError("Pipeline 'name' must be a string")

    trigger = config.get("trigger") or {}
    if not isinstance(trigger, dict):
        raise PipelineConfigError("Pipeline 'trigger' must be a mapping")
    if "branches" in trigger:
        trigger_branches = _validate_branches(trigger["branches"], "Pipeline trigger")
    else:
        trigger_branches = list(default_branches or [])

    notifications = config.get("notifications") or {}
    if not isinstance(notifications, dict):
        raise PipelineConfigError("Pipeline 'notifications' must be a mapping")
    notifications = {
        key: str(notifications.get(key, default))
        for key, default in DEFAULT_NOTIFICATIONS.items()
    }

    # Validate stages
    if "stages" not in config:
        raise PipelineConfigError("Pipeline must have 'stages' defined")

    stages = config["stages"]
    if not isinstance(stages, list):
        raise PipelineConfigError("Pipeline 'stages' must be a list")

    if len(stages) == 0:
        raise PipelineConfigError("Pipeline must have at least one stage")

    return {
        "name": name,
        "trigger_branches": trigger_branches,
        "env": _validate_env(config.get("env"), "Pipeline"),
        "notifications": notifications,
        "stages": [validate_stage(stage, i) for i, stage in enumerate(stages)],
    }

def validate_stage(stage: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Validate a single pipeline stage."""
    if not isinstance(stage, dict):
        raise PipelineConfigError(f"Stage {index} must be a dictionary")

    if "name" not in stage:
        raise PipelineConfigError(f"Stage {index} missing 'name'")

    if not isinstance(stage["name"], str):
        raise PipelineConfigError(f"Stage {index} 'name' must be a string")

    steps = stage.get("steps")
    if not isinstance(steps, list) or len(steps) == 0:
        raise PipelineConfigError(f"Stage {index} must have a non-empty 'steps' list")

    where = f"Stage {index}"
    return {
        "name": stage["name"],
        "branches": _validate_branches(stage.get("branches"), where),
        "env": _validate_env(stage.get("env"), where),
        "credentials": _validate_credentials(stage.get("credentials"), where),
        "steps": [validate_step(step, index, j) for j, step in enumerate(steps)],
    }

def validate_step(step: Dict[str, Any], stage_index: int, index: int) -> Dict[str, Any]:
    """Validate a single pipeline step."""
    where = f"Stage {stage_index} step {index}"

    if not isinstance(step, dict):
        raise PipelineConfigError(f"{where} must be a dictionary")

    # Required fields
    if "name" not in step:
        raise PipelineConfigError(f"{where} missing 'name'")

    if not isinstance(step["name"], str):
        raise PipelineConfigError(f"{where} 'name' must be a string")

    has_run = "run" in step
    has_uses = "uses" in step
    if has_run == has_uses:
        raise PipelineConfigError(f"{where} needs exactly one of 'run' or 'uses'")

    commands: List[str] = []
    uses = None
    if has_run:
        commands = step["run"]
        if isinstance(commands, str):
            commands = [commands]
        if not isinstance(commands, list) or not commands:
            raise PipelineConfigError(f"{where} 'run' must be a command or a non-empty list")
        for j, cmd in enumerate(commands):
            if not isinstance(cmd, str):
                raise PipelineConfigError(f"{where} command {j} must be a string")
    else:
        uses = step["uses"]
        if uses not in KNOWN_ACTIONS:
            raise PipelineConfigError(f"{where} uses unknown action '{uses}'")

    params = step.get("with") or {}
    if not isinstance(params, dict):
        raise PipelineConfigError(f"{where} 'with' must be a mapping")

    timeout = step.get("timeout", DEFAULT_STEP_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        raise PipelineConfigError(f"{where} 'timeout' must be a positive integer")

    image = step.get("image")
    if image is not None and not isinstance(image, str):
        raise PipelineConfigError(f"{where} 'image' must be a string")

    return {
        "name": step["name"],
        "run": commands,
        "uses": uses,
        "with": params,
        "image": image,
        "env": _validate_env(step.get("env"), where),
        "credentials": _validate_credentials(step.get("credentials"), where),
        "timeout": timeout,
    }
