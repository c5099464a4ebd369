"""
Resource inventory API

Read-only, cross-account listings. Units that fail are left out of the
response and reported in the logs; the request itself only fails on bad
filters.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.modules.inventory.domain.aggregator import ResourceAggregator
from app.schemas.resources import EC2Instance, RDSInstance, ResourceListResponse, S3Bucket, VPC
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.constants import ResourceKind
from app.shared.core.dependencies import get_resource_aggregator

router = APIRouter(tags=["Resources"])

Viewer = Annotated[CurrentUser, Depends(requires_role("admin", "developer"))]
Aggregator = Annotated[ResourceAggregator, Depends(get_resource_aggregator)]
AccountFilter = Annotated[
    Optional[UUID], Query(description="Internal id of one linked account")
]
RegionFilter = Annotated[Optional[str], Query(description="Single AWS region, e.g. us-east-1")]


@router.get("/ec2", response_model=ResourceListResponse[EC2Instance])
async def list_ec2_instances(
    _: Viewer,
    aggregator: Aggregator,
    account_id: AccountFilter = None,
    region: RegionFilter = None,
) -> ResourceListResponse[EC2Instance]:
    items = await aggregator.list(ResourceKind.EC2, account_id, region)
    return ResourceListResponse[EC2Instance](items=items, count=len(items))


@router.get("/rds", response_model=ResourceListResponse[RDSInstance])
async def list_rds_instances(
    _: Viewer,
    aggregator: Aggregator,
    account_id: AccountFilter = None,
    region: RegionFilter = None,
) -> ResourceListResponse[RDSInstance]:
    items = await aggregator.list(ResourceKind.RDS, account_id, region)
    return ResourceListResponse[RDSInstance](items=items, count=len(items))


@router.get("/s3", response_model=ResourceListResponse[S3Bucket])
async def list_s3_buckets(
    _: Viewer,
    aggregator: Aggregator,
    account_id: AccountFilter = None,
) -> ResourceListResponse[S3Bucket]:
    items = await aggregator.list(ResourceKind.S3, account_id)
    return ResourceListResponse[S3Bucket](items=items, count=len(items))


@router.get("/vpc", response_model=ResourceListResponse[VPC])
async def list_vpcs(
    _: Viewer,
    aggregator: Aggregator,
    account_id: AccountFilter = None,
    region: RegionFilter = None,
) -> ResourceListResponse[VPC]:
    items = await aggregator.list(ResourceKind.VPC, account_id, region)
    return ResourceListResponse[VPC](items=items, count=len(items))
