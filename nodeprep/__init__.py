"""nodeprep - prepare Linux hosts to join a Kubernetes cluster."""

__version__ = "0.1.0"
