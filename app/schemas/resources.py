from datetime import datetime
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ResourceOrigin(BaseModel):
    """Attribution shared by every aggregated resource record."""

    linked_account_id: UUID
    account_id: str
    account_name: str
    region: str

    model_config = ConfigDict(frozen=True)


class EC2Instance(ResourceOrigin):
    instance_id: str
    name: Optional[str] = None
    instance_type: Optional[str] = None
    state: Optional[str] = None
    public_ip_address: Optional[str] = None
    private_ip_address: Optional[str] = None
    availability_zone: Optional[str] = None
    launch_time: Optional[datetime] = None


class RDSInstance(ResourceOrigin):
    db_instance_identifier: str
    db_instance_class: Optional[str] = None
    engine: Optional[str] = None
    engine_version: Optional[str] = None
    status: Optional[str] = None
    endpoint: Optional[str] = None
    port: Optional[int] = None
    availability_zone: Optional[str] = None
    allocated_storage: Optional[int] = None


class S3Bucket(ResourceOrigin):
    """`region` is the listing region; `bucket_region` is where the bucket lives."""

    name: str
    creation_date: Optional[datetime] = None
    bucket_region: Optional[str] = None


class VPC(ResourceOrigin):
    vpc_id: str
    cidr_block: Optional[str] = None
    state: Optional[str] = None
    is_default: bool = False
    name: Optional[str] = None


ResourceT = TypeVar("ResourceT", bound=ResourceOrigin)


class ResourceListResponse(BaseModel, Generic[ResourceT]):
    items: List[ResourceT]
    count: int
