"""Jenkins adapter for the build trigger collaborator."""

from .client import JenkinsAPIError, JenkinsClient, job_path

__all__ = [
    "JenkinsAPIError",
    "JenkinsClient",
    "job_path",
]
