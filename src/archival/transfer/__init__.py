"""
Shipping artifacts to object storage.

S3ObjectStore is imported lazily so the engine can be used without boto3
when uploads are disabled.
"""

from .transfer_engine import TransferEngine, TransferResult


def create_s3_store(bucket: str, region=None, endpoint_url=None):
    """Factory function for the S3 object store."""
    from .s3_object_store import S3ObjectStore
    return S3ObjectStore(bucket=bucket, region=region, endpoint_url=endpoint_url)


__all__ = ["TransferEngine", "TransferResult", "create_s3_store"]
