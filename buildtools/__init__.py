"""Build and deployment helpers: CI detection, configuration, manifest selection and rollout."""

__version__ = "0.1.0"

__all__ = ["args", "ci", "cli", "config", "deploy", "docker", "file"]