from typing import Any, List, Mapping, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.modules.inventory.domain.registry import UnitOrigin, registry
from app.schemas.resources import S3Bucket
from app.shared.adapters.aws_utils import open_client, require_field, with_aws_retry
from app.shared.core.constants import S3_LEGACY_DEFAULT_LOCATION, ResourceKind

logger = structlog.get_logger()

# Location constraints that predate region names.
_LEGACY_LOCATION_ALIASES = {"EU": "eu-west-1"}


@registry.register(ResourceKind.S3)
class S3BucketLister:
    """
    Buckets share one global namespace, so a single listing call in the
    canonical region returns every bucket in the account. Each bucket's own
    region is looked up separately.
    """

    kind = ResourceKind.S3

    @with_aws_retry
    async def list_resources(
        self,
        session: Any,
        origin: UnitOrigin,
        credentials: Mapping[str, str],
    ) -> List[S3Bucket]:
        buckets: List[S3Bucket] = []
        async with open_client(session, "s3", origin.region, credentials) as s3:
            response = await s3.list_buckets()
            for bucket in response.get("Buckets", []):
                name = require_field(bucket, "Name", "ListBuckets")
                buckets.append(
                    S3Bucket(
                        **origin.as_fields(),
                        name=name,
                        creation_date=bucket.get("CreationDate"),
                        bucket_region=await self._bucket_region(s3, name, origin),
                    )
                )
        return buckets

    @staticmethod
    async def _bucket_region(s3: Any, bucket_name: str, origin: UnitOrigin) -> Optional[str]:
        """Bucket home region; None when the lookup itself fails."""
        try:
            response = await s3.get_bucket_location(Bucket=bucket_name)
        except (ClientError, BotoCoreError) as exc:
            logger.debug(
                "s3_bucket_location_unavailable",
                bucket=bucket_name,
                account_id=origin.account_id,
                error=str(exc),
            )
            return None
        location = response.get("LocationConstraint")
        if not location:
            return S3_LEGACY_DEFAULT_LOCATION
        return _LEGACY_LOCATION_ALIASES.get(location, location)
