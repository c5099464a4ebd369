from unittest.mock import patch

import pytest
from botocore.exceptions import EndpointConnectionError

from app.shared.adapters.aws_utils import (
    DEFAULT_BOTO_CONFIG,
    build_client_kwargs,
    describe_aws_error,
    find_tag,
    iter_paginated,
    map_aws_credentials,
    with_aws_retry,
)
from tests.utils import client_error, paginating_client


def test_map_aws_credentials_accepts_both_shapes():
    assert map_aws_credentials({"AccessKeyId": "A", "SecretAccessKey": "S", "SessionToken": "T"}) == {
        "aws_access_key_id": "A",
        "aws_secret_access_key": "S",
        "aws_session_token": "T",
    }
    assert map_aws_credentials({}) == {}


def test_build_client_kwargs_applies_region_config_and_endpoint():
    with patch("app.shared.adapters.aws_utils.get_settings") as get_settings:
        get_settings.return_value.AWS_ENDPOINT_URL = "http://localhost:4566"
        kwargs = build_client_kwargs("us-east-1", {"aws_access_key_id": "A"})

    assert kwargs["region_name"] == "us-east-1"
    assert kwargs["config"] is DEFAULT_BOTO_CONFIG
    assert kwargs["endpoint_url"] == "http://localhost:4566"
    assert kwargs["aws_access_key_id"] == "A"


def test_describe_aws_error_formats_code_and_message():
    assert describe_aws_error(client_error("AccessDenied", "nope")) == "AccessDenied: nope"
    assert describe_aws_error(EndpointConnectionError(endpoint_url="https://x")).startswith(
        "EndpointConnectionError: "
    )


def test_find_tag():
    tags = [{"Key": "team", "Value": "core"}, {"Key": "Name", "Value": "web"}]
    assert find_tag(tags, "Name") == "web"
    assert find_tag(None, "Name") is None


@pytest.mark.asyncio
async def test_iter_paginated_stops_at_page_cap():
    client = paginating_client(describe_vpcs=[{"Vpcs": [n]} for n in range(5)])

    pages = [page async for page in iter_paginated(client, "describe_vpcs", max_pages=2)]

    assert pages == [{"Vpcs": [0]}, {"Vpcs": [1]}]


@pytest.mark.asyncio
async def test_with_aws_retry_does_not_retry_client_errors():
    calls = {"n": 0}

    @with_aws_retry
    async def _call():
        calls["n"] += 1
        raise client_error("AccessDenied", "nope")

    with pytest.raises(Exception):
        await _call()
    assert calls["n"] == 1
