from typing import Any, List, Mapping

from app.modules.inventory.domain.registry import UnitOrigin, registry
from app.schemas.resources import RDSInstance
from app.shared.adapters.aws_utils import (
    iter_paginated,
    open_client,
    require_field,
    with_aws_retry,
)
from app.shared.core.constants import ResourceKind


@registry.register(ResourceKind.RDS)
class RDSInstanceLister:
    kind = ResourceKind.RDS

    @with_aws_retry
    async def list_resources(
        self,
        session: Any,
        origin: UnitOrigin,
        credentials: Mapping[str, str],
    ) -> List[RDSInstance]:
        databases: List[RDSInstance] = []
        async with open_client(session, "rds", origin.region, credentials) as rds:
            async for page in iter_paginated(rds, "describe_db_instances"):
                for db in page.get("DBInstances", []):
                    # Endpoint is absent while an instance is still being created.
                    endpoint = db.get("Endpoint") or {}
                    databases.append(
                        RDSInstance(
                            **origin.as_fields(),
                            db_instance_identifier=require_field(
                                db, "DBInstanceIdentifier", "DescribeDBInstances"
                            ),
                            db_instance_class=db.get("DBInstanceClass"),
                            engine=db.get("Engine"),
                            engine_version=db.get("EngineVersion"),
                            status=db.get("DBInstanceStatus"),
                            endpoint=endpoint.get("Address"),
                            port=endpoint.get("Port"),
                            availability_zone=db.get("AvailabilityZone"),
                            allocated_storage=db.get("AllocatedStorage"),
                        )
                    )
        return databases
