"""ciorigin package exports."""

from .environment import EnvironmentSnapshot
from .errors import (
    CommandTimeoutError,
    NonZeroExitError,
    ProvenanceError,
    RepositoryFormatError,
    SchemaValidationError,
    SpawnError,
    UsageError,
)
from .loader import ProvenanceLoader, resolve_provenance
from .merge import merge
from .models import BuildProvenance, Diagnostic, Identity, JobInfo, PipelineInfo, RepositoryInfo
from .normalize import JobName, normalize_ref, parse_job_name, strip_credentials
from .providers import PROVIDERS, Detection, ProviderFields, ProviderProfile, detect
from .schema import export_provenance, validate_provenance_payload
from .settings import Settings, is_test_run_active
from .spawn import ProcessResult, run, run_capturing, run_checked, run_to_file
from .tags import TagSink, apply_tags, provenance_tags

__version__ = "0.1.0"

__all__ = [
    "BuildProvenance",
    "CommandTimeoutError",
    "Detection",
    "Diagnostic",
    "EnvironmentSnapshot",
    "Identity",
    "JobInfo",
    "JobName",
    "NonZeroExitError",
    "PROVIDERS",
    "PipelineInfo",
    "ProcessResult",
    "ProvenanceError",
    "ProvenanceLoader",
    "ProviderFields",
    "ProviderProfile",
    "RepositoryFormatError",
    "RepositoryInfo",
    "SchemaValidationError",
    "Settings",
    "SpawnError",
    "TagSink",
    "UsageError",
    "apply_tags",
    "detect",
    "export_provenance",
    "is_test_run_active",
    "merge",
    "normalize_ref",
    "parse_job_name",
    "provenance_tags",
    "resolve_provenance",
    "run",
    "run_capturing",
    "run_checked",
    "run_to_file",
    "strip_credentials",
    "validate_provenance_payload",
]
