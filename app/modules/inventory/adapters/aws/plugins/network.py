from typing import Any, List, Mapping

from app.modules.inventory.domain.registry import UnitOrigin, registry
from app.schemas.resources import VPC
from app.shared.adapters.aws_utils import (
    find_tag,
    iter_paginated,
    open_client,
    require_field,
    with_aws_retry,
)
from app.shared.core.constants import ResourceKind


@registry.register(ResourceKind.VPC)
class VPCLister:
    kind = ResourceKind.VPC

    @with_aws_retry
    async def list_resources(
        self,
        session: Any,
        origin: UnitOrigin,
        credentials: Mapping[str, str],
    ) -> List[VPC]:
        vpcs: List[VPC] = []
        async with open_client(session, "ec2", origin.region, credentials) as ec2:
            async for page in iter_paginated(ec2, "describe_vpcs"):
                for vpc in page.get("Vpcs", []):
                    vpcs.append(
                        VPC(
                            **origin.as_fields(),
                            vpc_id=require_field(vpc, "VpcId", "DescribeVpcs"),
                            cidr_block=vpc.get("CidrBlock"),
                            state=vpc.get("State"),
                            is_default=bool(vpc.get("IsDefault", False)),
                            name=find_tag(vpc.get("Tags"), "Name"),
                        )
                    )
        return vpcs
