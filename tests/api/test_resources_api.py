import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.linked_account import VerificationState
from app.shared.connections.federation import FederatedCredentials
from app.shared.core.exceptions import FederationError
from tests.utils import make_aws_session, paginating_client

BASE = "/api/v1/resources"


def _obtain(failing=()):
    async def _inner(account, region, **kwargs):
        if account.external_account_id in failing:
            raise FederationError("AccessDenied: not authorized")
        return FederatedCredentials("AKIA", "s", "t", None, region)

    return AsyncMock(side_effect=_inner)


def _ec2_pages():
    return paginating_client(
        describe_instances=[
            {
                "Reservations": [
                    {
                        "Instances": [
                            {"InstanceId": "i-1", "State": {"Name": "running"}},
                            {"InstanceId": "i-2", "State": {"Name": "stopped"}},
                        ]
                    }
                ]
            }
        ],
        describe_vpcs=[{"Vpcs": [{"VpcId": "vpc-1", "IsDefault": True}]}],
    )


@pytest.mark.asyncio
async def test_ec2_partial_failure_returns_healthy_accounts(
    async_client, developer_headers, mock_provider, account_factory
):
    healthy = await account_factory(VerificationState.VERIFIED, display_name="A")
    broken = await account_factory(VerificationState.VERIFIED, display_name="B")
    await account_factory(VerificationState.FAILED, display_name="C")
    mock_provider.obtain = _obtain({broken.external_account_id})
    mock_provider.session = make_aws_session(ec2=_ec2_pages())

    response = await async_client.get(
        f"{BASE}/ec2", params={"region": "ap-northeast-2"}, headers=developer_headers
    )

    body = response.json()
    assert response.status_code == 200
    assert body["count"] == 2
    assert [i["instance_id"] for i in body["items"]] == ["i-1", "i-2"]
    for item in body["items"]:
        assert item["account_id"] == healthy.external_account_id
        assert item["account_name"] == "A"
        assert item["region"] == "ap-northeast-2"
        assert item["linked_account_id"] == str(healthy.id)


@pytest.mark.asyncio
async def test_vpc_default_regions(async_client, admin_headers, mock_provider, account_factory):
    await account_factory(VerificationState.VERIFIED)
    mock_provider.obtain = _obtain()
    mock_provider.session = make_aws_session(ec2=_ec2_pages())

    response = await async_client.get(f"{BASE}/vpc", headers=admin_headers)

    regions = [i["region"] for i in response.json()["items"]]
    assert regions == ["ap-northeast-2", "ap-northeast-1", "us-east-1"]


@pytest.mark.asyncio
async def test_s3_lists_once_per_account_in_canonical_region(
    async_client, admin_headers, mock_provider, account_factory
):
    await account_factory(VerificationState.VERIFIED)
    s3 = MagicMock()
    s3.list_buckets = AsyncMock(return_value={"Buckets": [{"Name": "logs"}]})
    s3.get_bucket_location = AsyncMock(return_value={"LocationConstraint": "us-west-2"})
    mock_provider.obtain = _obtain()
    mock_provider.session = make_aws_session(s3=s3)

    response = await async_client.get(f"{BASE}/s3", headers=admin_headers)

    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["region"] == "ap-northeast-2"
    assert items[0]["bucket_region"] == "us-west-2"


@pytest.mark.asyncio
async def test_rds_empty_when_no_verified_accounts(async_client, admin_headers, mock_provider):
    mock_provider.obtain = AsyncMock()

    response = await async_client.get(f"{BASE}/rds", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"items": [], "count": 0}
    mock_provider.obtain.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_account_filter_is_empty_not_404(async_client, admin_headers, mock_provider):
    response = await async_client.get(
        f"{BASE}/ec2", params={"account_id": str(uuid.uuid4())}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["count"] == 0


@pytest.mark.asyncio
async def test_malformed_region_returns_422(async_client, admin_headers):
    response = await async_client.get(
        f"{BASE}/ec2", params={"region": "us-east"}, headers=admin_headers
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_malformed_account_filter_returns_422(async_client, admin_headers):
    response = await async_client.get(
        f"{BASE}/ec2", params={"account_id": "not-a-uuid"}, headers=admin_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_viewer_cannot_list_resources(async_client, viewer_headers):
    response = await async_client.get(f"{BASE}/ec2", headers=viewer_headers)
    assert response.status_code == 403
