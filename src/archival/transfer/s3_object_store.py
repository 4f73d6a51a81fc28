"""
S3 object store: tree-level sync of the artifact directory.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import PrerequisiteMissing
from ..core.object_store import ObjectStore


logger = logging.getLogger(__name__)


def join_key(prefix: str, relative: str) -> str:
    """Join a key prefix and a relative path with single slashes."""
    prefix = (prefix or "").strip("/")
    relative = relative.lstrip("/")
    return f"{prefix}/{relative}" if prefix else relative


class S3ObjectStore(ObjectStore):
    """
    Uploads files that are missing remotely, differ in size, or are newer
    locally than the remote copy. Remote objects are never deleted.
    """

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        request_timeout_s: float = 60.0,
        client=None,
        sts_client=None,
    ):
        """
        Initialize the S3 store.

        Args:
            bucket: Destination bucket
            region: AWS region
            endpoint_url: Custom endpoint (S3-compatible stores)
            request_timeout_s: Connect/read timeout per request
            client: Preconfigured S3 client (tests)
            sts_client: Preconfigured STS client (tests)
        """
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url

        if client is None or sts_client is None:
            session = boto3.Session(region_name=region)
            boto_config = BotoConfig(
                connect_timeout=request_timeout_s,
                read_timeout=request_timeout_s,
                retries={"max_attempts": 3, "mode": "standard"},
            )
            if client is None:
                client = session.client(
                    "s3", region_name=region, endpoint_url=endpoint_url, config=boto_config
                )
            if sts_client is None:
                sts_client = session.client("sts", region_name=region, config=boto_config)

        self.client = client
        self.sts_client = sts_client

    def describe(self, remote_prefix: str) -> str:
        prefix = (remote_prefix or "").strip("/")
        return f"s3://{self.bucket}/{prefix + '/' if prefix else ''}"

    def check_credentials(self) -> str:
        try:
            identity = self.sts_client.get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            raise PrerequisiteMissing(f"AWS credentials are not usable: {e}") from e
        arn = identity.get("Arn", "unknown")
        logger.info(f"Authenticated to AWS as {arn}")
        return arn

    def _list_remote(self, remote_prefix: str) -> Dict[str, Tuple[int, datetime]]:
        """Map of key -> (size, last modified) under a prefix."""
        prefix = (remote_prefix or "").strip("/")
        list_prefix = f"{prefix}/" if prefix else ""
        remote = {}
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
            for obj in page.get("Contents", []):
                remote[obj["Key"]] = (int(obj["Size"]), obj["LastModified"])
        return remote

    @staticmethod
    def _needs_upload(local_path: Path, remote: Optional[Tuple[int, datetime]]) -> bool:
        if remote is None:
            return True
        size, last_modified = remote
        stat = local_path.stat()
        if stat.st_size != size:
            return True
        local_mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return local_mtime > last_modified

    def sync(self, local_dir: Path, remote_prefix: str, storage_class: str) -> int:
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            logger.info(f"Nothing to sync: {local_dir} does not exist")
            return 0

        remote = self._list_remote(remote_prefix)
        uploaded = 0
        for path in sorted(p for p in local_dir.rglob("*") if p.is_file()):
            if path.name.endswith(".partial"):
                continue
            key = join_key(remote_prefix, path.relative_to(local_dir).as_posix())
            if not self._needs_upload(path, remote.get(key)):
                continue
            logger.debug(f"Uploading {path} to s3://{self.bucket}/{key}")
            self.client.upload_file(
                str(path), self.bucket, key, ExtraArgs={"StorageClass": storage_class}
            )
            uploaded += 1

        logger.info(f"Synced {local_dir} to {self.describe(remote_prefix)}: {uploaded} files uploaded")
        return uploaded
