"""rvm-provisioner — converge a host user's RVM environment to a desired state."""

__version__ = "0.1.0"
