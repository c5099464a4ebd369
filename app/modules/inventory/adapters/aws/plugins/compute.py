from typing import Any, List, Mapping

from app.modules.inventory.domain.registry import UnitOrigin, registry
from app.schemas.resources import EC2Instance
from app.shared.adapters.aws_utils import (
    find_tag,
    iter_paginated,
    open_client,
    require_field,
    with_aws_retry,
)
from app.shared.core.constants import ResourceKind


@registry.register(ResourceKind.EC2)
class EC2InstanceLister:
    kind = ResourceKind.EC2

    @with_aws_retry
    async def list_resources(
        self,
        session: Any,
        origin: UnitOrigin,
        credentials: Mapping[str, str],
    ) -> List[EC2Instance]:
        instances: List[EC2Instance] = []
        async with open_client(session, "ec2", origin.region, credentials) as ec2:
            async for page in iter_paginated(ec2, "describe_instances"):
                for reservation in page.get("Reservations", []):
                    for instance in reservation.get("Instances", []):
                        instances.append(
                            EC2Instance(
                                **origin.as_fields(),
                                instance_id=require_field(
                                    instance, "InstanceId", "DescribeInstances"
                                ),
                                name=find_tag(instance.get("Tags"), "Name"),
                                instance_type=instance.get("InstanceType"),
                                state=instance.get("State", {}).get("Name"),
                                public_ip_address=instance.get("PublicIpAddress"),
                                private_ip_address=instance.get("PrivateIpAddress"),
                                availability_zone=instance.get("Placement", {}).get(
                                    "AvailabilityZone"
                                ),
                                launch_time=instance.get("LaunchTime"),
                            )
                        )
        return instances
