"""Building blocks of a container network agent for cloud VPCs: tracing, signals, storage, API errors, credentials, metadata, API shapes, tags, security groups, instance limits and subnets."""

__version__ = "0.1.0"