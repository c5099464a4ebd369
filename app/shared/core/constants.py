import re
from enum import Enum

# Region names are validated by shape; new AWS regions need no code change.
AWS_REGION_PATTERN = r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d{1,2}$"

# Standard operating regions scanned when a resource query has no region filter.
AGGREGATION_DEFAULT_REGIONS = ["ap-northeast-2", "ap-northeast-1", "us-east-1"]

# Buckets live in a global namespace; ListBuckets is issued against this region only.
GLOBAL_RESOURCE_REGION = "ap-northeast-2"

# S3 reports an empty LocationConstraint for buckets in us-east-1.
S3_LEGACY_DEFAULT_LOCATION = "us-east-1"

AWS_ACCOUNT_ID_PATTERN = r"^\d{12}$"
AWS_ROLE_ARN_PATTERN = r"^arn:aws:iam::\d{12}:role/.+$"


class ResourceKind(str, Enum):
    """Resource families the inventory can aggregate across linked accounts."""

    EC2 = "ec2"
    RDS = "rds"
    S3 = "s3"
    VPC = "vpc"

    @property
    def is_global(self) -> bool:
        return self is ResourceKind.S3


def is_aws_region(value: str) -> bool:
    return re.fullmatch(AWS_REGION_PATTERN, value or "") is not None
