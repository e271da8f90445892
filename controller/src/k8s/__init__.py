from controller.src.k8s.client import (
    init_k8s_client,
    get_batch_api,
    get_core_api,
    ensure_namespace,
    create_step_secret,
    delete_secret,
    delete_job,
)
from controller.src.k8s.job_builder import (
    build_job,
    build_job_name,
    get_job_status,
    render_script,
)

__all__ = [
    "init_k8s_client",
    "get_batch_api",
    "get_core_api",
    "ensure_namespace",
    "create_step_secret",
    "delete_secret",
    "delete_job",
    "build_job",
    "build_job_name",
    "get_job_status",
    "render_script",
]
