from .compute import EC2InstanceLister
from .database import RDSInstanceLister
from .storage import S3BucketLister
from .network import VPCLister

__all__ = [
    "EC2InstanceLister",
    "RDSInstanceLister",
    "S3BucketLister",
    "VPCLister",
]
