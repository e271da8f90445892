"""
Kubernetes Job builder for pipeline steps.
"""

from kubernetes import client
from typing import List, Dict, Optional
import hashlib
import shlex

from controller.src.config import get_settings
from controller.src.tools.types import CommandSpec, split_placeholders

settings = get_settings()

WORKSPACE_MOUNT = "/workspace"

def build_job_name(run_id: str, stage_order: int, step_order: int, step_name: str) -> str:
    """Generate a unique job name."""
    # K8s names must be lowercase, alphanumeric, max 63 chars
    safe_name = step_name.lower().replace(" ", "-").replace("_", "-")
    safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
    safe_name = safe_name[:20].strip("-") or "step"

    # Use short hash of run_id for uniqueness
    run_hash = hashlib.md5(run_id.encode()).hexdigest()[:8]

    return f"sl-{run_hash}-{stage_order}-{step_order}-{safe_name}"

def shell_word(arg: str, expand: bool = True) -> str:
    """
    Quote one argument for /bin/sh.
    ${VAR} placeholders stay references so the pod's shell fills them in
    from its environment; everything else is quoted literally.
    """
    if not expand:
        return shlex.quote(arg)
    chunks = split_placeholders(arg)
    if not chunks:
        return "''"
    return "".join(
        f'"${{{value}}}"' if is_var else shlex.quote(value)
        for is_var, value in chunks
    )

def render_script(commands: List[CommandSpec]) -> str:
    """Join a step's commands into one fail-fast shell script."""
    lines = []
    for command in commands:
        line = " ".join(shell_word(arg, command.expand) for arg in command.argv)
        if command.stdin is not None:
            line = f"printf '%s' {shell_word(command.stdin, command.expand)} | {line}"
        lines.append(line)
    # Join commands with && so it fails fast on error
    return " && ".join(lines)

def build_job(
    run_id: str,
    stage_order: int,
    step_order: int,
    step_name: str,
    image: str,
    commands: List[CommandSpec],
    env_vars: Optional[Dict[str, str]] = None,
    secret_name: Optional[str] = None,
    secret_keys: Optional[List[str]] = None,
    timeout: int = 600,
) -> client.V1Job:
    """
    Build a Kubernetes Job for a pipeline step.
    Credential variables are referenced from `secret_name`, never inlined.
    """
    job_name = build_job_name(run_id, stage_order, step_order, step_name)
    labels = {
        "app": "shipline",
        "run-id": run_id,
        "stage-order": str(stage_order),
        "step-order": str(step_order),
    }

    # Build environment variables
    env = [
        client.V1EnvVar(name="SHIPLINE_RUN_ID", value=run_id),
        client.V1EnvVar(name="SHIPLINE_STAGE_ORDER", value=str(stage_order)),
        client.V1EnvVar(name="SHIPLINE_STEP_ORDER", value=str(step_order)),
        client.V1EnvVar(name="SHIPLINE_STEP_NAME", value=step_name),
    ]

    if env_vars:
        for key, value in env_vars.items():
            env.append(client.V1EnvVar(name=key, value=value))

    for key in secret_keys or []:
        env.append(client.V1EnvVar(
            name=key,
            value_from=client.V1EnvVarSource(
                secret_key_ref=client.V1SecretKeySelector(name=secret_name, key=key)
            ),
        ))

    volumes = None
    volume_mounts = None
    working_dir = None
    if settings.k8s_workspace_claim:
        volumes = [client.V1Volume(
            name="workspace",
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=settings.k8s_workspace_claim
            ),
        )]
        # One sub-directory per run on the shared claim
        volume_mounts = [client.V1VolumeMount(
            name="workspace",
            mount_path=WORKSPACE_MOUNT,
            sub_path=run_id,
        )]
        working_dir = WORKSPACE_MOUNT

    container = client.V1Container(
        name="step",
        image=image,
        command=["/bin/sh", "-c"],
        args=[render_script(commands)],
        env=env,
        working_dir=working_dir,
        volume_mounts=volume_mounts,
        resources=client.V1ResourceRequirements(
            requests={"cpu": "100m", "memory": "128Mi"},
            limits={"cpu": "500m", "memory": "512Mi"},
        ),
    )

    pod_spec = client.V1PodSpec(
        containers=[container],
        restart_policy="Never",
        volumes=volumes,
    )

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels=labels),
        spec=pod_spec,
    )

    job_spec = client.V1JobSpec(
        template=template,
        backoff_limit=0,  # Don't retry failed jobs
        active_deadline_seconds=timeout,
        ttl_seconds_after_finished=settings.job_ttl_after_finished,
    )

    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=job_name,
            namespace=settings.k8s_namespace,
            labels=labels,
        ),
        spec=job_spec,
    )

def get_job_status(job: client.V1Job) -> str:
    """
    Determine job status from Kubernetes Job object.
    Returns: 'pending', 'running', 'succeeded', 'failed'
    """
    if job.status is None:
        return "pending"

    if job.status.succeeded and job.status.succeeded > 0:
        return "succeeded"

    if job.status.failed and job.status.failed > 0:
        return "failed"

    if job.status.active and job.status.active > 0:
        return "running"

    return "pending"
