"""
VM Image Registry

Tracks metadata for virtual-machine images and streams their bytes
to and from pluggable storage backends (filesystem, HTTP, S3 and
S3-compatible object stores, HDFS).
"""

__version__ = "1.0.0"
