"""PersistentVolumeClaim provisioning for PostgreSQL clusters on Kubernetes."""

__version__ = "1.0.0"
