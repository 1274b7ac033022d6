"""Build, edit and deployment pipeline."""

from appforge.pipeline.build import BuildOrchestrator, BuildOutcome
from appforge.pipeline.deploy import DeploymentOrchestrator, generate_project_name
from appforge.pipeline.edit import EditOrchestrator, EditResult
from appforge.pipeline.parser import ParsedResponse, parse_files, parse_response
from appforge.pipeline.provisioner import SandboxProvisioner, classify_server_log
from appforge.pipeline.targeter import identify_relevant_files
from appforge.pipeline.workspace import SandboxWorkspace

__all__ = [
    "BuildOrchestrator",
    "BuildOutcome",
    "DeploymentOrchestrator",
    "EditOrchestrator",
    "EditResult",
    "ParsedResponse",
    "SandboxProvisioner",
    "SandboxWorkspace",
    "classify_server_log",
    "generate_project_name",
    "identify_relevant_files",
    "parse_files",
    "parse_response",
]
