"""s3copy - copy and mirror files between a local filesystem and S3."""

__version__ = "0.1.0"
