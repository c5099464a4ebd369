import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ReadTimeoutError

from app.modules.inventory.adapters.aws.plugins import (
    EC2InstanceLister,
    RDSInstanceLister,
    S3BucketLister,
    VPCLister,
)
from app.modules.inventory.domain.registry import ResourceLister, UnitOrigin, registry
from app.shared.core.constants import ResourceKind
from app.shared.core.exceptions import AdapterError
from tests.utils import client_error, make_aws_session, paginating_client

CREDS = {
    "aws_access_key_id": "ASIAEXAMPLE",
    "aws_secret_access_key": "secret",
    "aws_session_token": "token",
}
LAUNCHED = datetime(2025, 5, 1, 8, 30, tzinfo=timezone.utc)


def _origin(region="ap-northeast-2"):
    return UnitOrigin(
        linked_account_id=uuid.uuid4(),
        account_id="123456789012",
        account_name="Production",
        region=region,
    )


def test_every_kind_has_a_registered_lister():
    assert set(registry.kinds()) == set(ResourceKind)
    for kind in registry.kinds():
        lister = registry.get(kind)
        assert isinstance(lister, ResourceLister)
        assert lister.kind == kind


@pytest.mark.asyncio
async def test_ec2_lister_maps_instances_across_pages():
    ec2 = paginating_client(
        describe_instances=[
            {
                "Reservations": [
                    {
                        "Instances": [
                            {
                                "InstanceId": "i-0abc",
                                "InstanceType": "t3.micro",
                                "State": {"Name": "running"},
                                "PublicIpAddress": "3.3.3.3",
                                "PrivateIpAddress": "10.0.0.5",
                                "Placement": {"AvailabilityZone": "ap-northeast-2a"},
                                "LaunchTime": LAUNCHED,
                                "Tags": [
                                    {"Key": "env", "Value": "prod"},
                                    {"Key": "Name", "Value": "web-1"},
                                ],
                            }
                        ]
                    }
                ]
            },
            {"Reservations": [{"Instances": [{"InstanceId": "i-0def", "State": {"Name": "stopped"}}]}]},
        ]
    )
    session = make_aws_session(ec2=ec2)
    origin = _origin()

    instances = await EC2InstanceLister().list_resources(session, origin, CREDS)

    assert [i.instance_id for i in instances] == ["i-0abc", "i-0def"]
    first = instances[0]
    assert first.name == "web-1"
    assert first.instance_type == "t3.micro"
    assert first.state == "running"
    assert first.public_ip_address == "3.3.3.3"
    assert first.private_ip_address == "10.0.0.5"
    assert first.availability_zone == "ap-northeast-2a"
    assert first.launch_time == LAUNCHED
    assert first.account_id == "123456789012"
    assert first.account_name == "Production"
    assert first.region == "ap-northeast-2"
    assert first.linked_account_id == origin.linked_account_id
    assert instances[1].name is None

    kwargs = session.client.call_args.kwargs
    assert kwargs["region_name"] == "ap-northeast-2"
    assert kwargs["aws_session_token"] == "token"


@pytest.mark.asyncio
async def test_ec2_lister_rejects_item_without_id():
    ec2 = paginating_client(describe_instances=[{"Reservations": [{"Instances": [{"InstanceType": "t3.micro"}]}]}])
    with pytest.raises(AdapterError) as exc_info:
        await EC2InstanceLister().list_resources(make_aws_session(ec2=ec2), _origin(), CREDS)
    assert exc_info.value.message == (
        "MalformedResponse: DescribeInstances returned an item without InstanceId"
    )
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_vpc_lister_rejects_item_without_id():
    ec2 = paginating_client(describe_vpcs=[{"Vpcs": [{"CidrBlock": "10.0.0.0/16"}]}])
    with pytest.raises(AdapterError, match="DescribeVpcs returned an item without VpcId"):
        await VPCLister().list_resources(make_aws_session(ec2=ec2), _origin(), CREDS)


@pytest.mark.asyncio
async def test_rds_lister_maps_endpoint_and_storage():
    rds = paginating_client(
        describe_db_instances=[
            {
                "DBInstances": [
                    {
                        "DBInstanceIdentifier": "orders-db",
                        "DBInstanceClass": "db.t3.medium",
                        "Engine": "postgres",
                        "EngineVersion": "16.2",
                        "DBInstanceStatus": "available",
                        "Endpoint": {"Address": "orders-db.abc.rds.amazonaws.com", "Port": 5432},
                        "AvailabilityZone": "ap-northeast-2c",
                        "AllocatedStorage": 100,
                    },
                    {
                        "DBInstanceIdentifier": "creating-db",
                        "DBInstanceStatus": "creating",
                    },
                ]
            }
        ]
    )

    databases = await RDSInstanceLister().list_resources(make_aws_session(rds=rds), _origin(), CREDS)

    assert databases[0].db_instance_identifier == "orders-db"
    assert databases[0].endpoint == "orders-db.abc.rds.amazonaws.com"
    assert databases[0].port == 5432
    assert databases[0].allocated_storage == 100
    assert databases[0].engine_version == "16.2"
    assert databases[1].endpoint is None
    assert databases[1].status == "creating"


@pytest.mark.asyncio
async def test_vpc_lister_maps_default_flag_and_name():
    ec2 = paginating_client(
        describe_vpcs=[
            {
                "Vpcs": [
                    {"VpcId": "vpc-1", "CidrBlock": "172.31.0.0/16", "State": "available", "IsDefault": True},
                    {
                        "VpcId": "vpc-2",
                        "CidrBlock": "10.0.0.0/16",
                        "State": "available",
                        "IsDefault": False,
                        "Tags": [{"Key": "Name", "Value": "core"}],
                    },
                ]
            }
        ]
    )

    vpcs = await VPCLister().list_resources(make_aws_session(ec2=ec2), _origin(), CREDS)

    assert [(v.vpc_id, v.is_default, v.name) for v in vpcs] == [
        ("vpc-1", True, None),
        ("vpc-2", False, "core"),
    ]
    assert vpcs[1].cidr_block == "10.0.0.0/16"


@pytest.mark.asyncio
async def test_s3_lister_resolves_bucket_regions():
    s3 = MagicMock()
    s3.list_buckets = AsyncMock(
        return_value={
            "Buckets": [
                {"Name": "legacy-bucket", "CreationDate": LAUNCHED},
                {"Name": "seoul-bucket", "CreationDate": LAUNCHED},
                {"Name": "eu-bucket"},
                {"Name": "locked-bucket"},
            ]
        }
    )
    locations = {
        "legacy-bucket": {"LocationConstraint": None},
        "seoul-bucket": {"LocationConstraint": "ap-northeast-2"},
        "eu-bucket": {"LocationConstraint": "EU"},
    }

    async def _location(Bucket):
        if Bucket not in locations:
            raise client_error("AccessDenied", "Access Denied", "GetBucketLocation")
        return locations[Bucket]

    s3.get_bucket_location = AsyncMock(side_effect=_location)

    buckets = await S3BucketLister().list_resources(make_aws_session(s3=s3), _origin(), CREDS)

    assert [(b.name, b.bucket_region) for b in buckets] == [
        ("legacy-bucket", "us-east-1"),
        ("seoul-bucket", "ap-northeast-2"),
        ("eu-bucket", "eu-west-1"),
        ("locked-bucket", None),
    ]
    assert all(b.region == "ap-northeast-2" for b in buckets)
    assert buckets[0].creation_date == LAUNCHED


@pytest.mark.asyncio
async def test_lister_retries_once_on_read_timeout():
    s3 = MagicMock()
    s3.list_buckets = AsyncMock(
        side_effect=[ReadTimeoutError(endpoint_url="https://s3.amazonaws.com"), {"Buckets": []}]
    )

    buckets = await S3BucketLister().list_resources(make_aws_session(s3=s3), _origin(), CREDS)

    assert buckets == []
    assert s3.list_buckets.await_count == 2
