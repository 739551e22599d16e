"""
Prod-stage AWS networking: VPC, public subnet, internet gateway, routing
and security group, all tagged with the project name.

The checks form a chain. Each one reports no drift while its prerequisite is
still missing, so one reconcile pass creates one more link and the executor's
re-scan surfaces the next.
"""

import logging
from typing import List

from ..config.stack_config import AwsConfig
from ..core.models import Fix, Severity, Stage

logger = logging.getLogger(__name__)

SOURCE = "aws"


def _enabled(context) -> bool:
    return context.config.uses_aws() and bool(context.environments_for(Stage.PROD))


def _network(context) -> AwsConfig:
    return context.config.aws or AwsConfig()


def _vpc(context):
    return context.provider.find_vpc()


def _vpc_missing(context) -> bool:
    return _enabled(context) and _vpc(context) is None


def _create_vpc(context) -> bool:
    if _vpc(context) is None:
        context.provider.create_vpc(_network(context).cidr_block)
    return True


def _subnet_missing(context) -> bool:
    if not _enabled(context) or _vpc(context) is None:
        return False
    return context.provider.find_subnet("public") is None


def _create_subnet(context) -> bool:
    provider = context.provider
    if provider.find_subnet("public") is None:
        provider.create_subnet(_vpc(context), _network(context).public_subnet_cidr, "public")
    return True


def _gateway_missing(context) -> bool:
    if not _enabled(context):
        return False
    vpc_id = _vpc(context)
    if vpc_id is None:
        return False
    return context.provider.find_internet_gateway(vpc_id) is None


def _create_gateway(context) -> bool:
    vpc_id = _vpc(context)
    if context.provider.find_internet_gateway(vpc_id) is None:
        context.provider.create_internet_gateway(vpc_id)
    return True


def _route_table_missing(context) -> bool:
    if not _enabled(context):
        return False
    vpc_id = _vpc(context)
    if vpc_id is None:
        return False
    provider = context.provider
    if provider.find_internet_gateway(vpc_id) is None or provider.find_subnet("public") is None:
        return False
    return provider.find_public_route_table(vpc_id) is None


def _create_route_table(context) -> bool:
    provider = context.provider
    vpc_id = _vpc(context)
    if provider.find_public_route_table(vpc_id) is None:
        provider.create_public_route_table(
            vpc_id,
            provider.find_internet_gateway(vpc_id),
            provider.find_subnet("public"),
        )
    return True


def _security_group_missing(context) -> bool:
    if not _enabled(context):
        return False
    vpc_id = _vpc(context)
    if vpc_id is None:
        return False
    return context.provider.find_security_group(vpc_id) is None


def _create_security_group(context) -> bool:
    vpc_id = _vpc(context)
    if context.provider.find_security_group(vpc_id) is None:
        context.provider.create_security_group(vpc_id)
    return True


def build_fixes() -> List[Fix]:
    """Network fixes in dependency order."""
    return [
        Fix(
            id="aws-vpc-missing",
            stage=Stage.PROD,
            severity=Severity.CRITICAL,
            description="Project VPC not found",
            detect=_vpc_missing,
            remediate=_create_vpc,
            manual_instructions="Create a VPC tagged stack:project=<name>",
            source=SOURCE,
        ),
        Fix(
            id="aws-subnet-public-missing",
            stage=Stage.PROD,
            severity=Severity.CRITICAL,
            description="Public subnet not found in project VPC",
            detect=_subnet_missing,
            remediate=_create_subnet,
            manual_instructions="Create a subnet tagged stack:subnet-type=public in the project VPC",
            source=SOURCE,
        ),
        Fix(
            id="aws-internet-gateway-missing",
            stage=Stage.PROD,
            severity=Severity.CRITICAL,
            description="No internet gateway attached to project VPC",
            detect=_gateway_missing,
            remediate=_create_gateway,
            manual_instructions="Create an internet gateway and attach it to the project VPC",
            source=SOURCE,
        ),
        Fix(
            id="aws-route-table-missing",
            stage=Stage.PROD,
            severity=Severity.CRITICAL,
            description="No public route table with a default route",
            detect=_route_table_missing,
            remediate=_create_route_table,
            manual_instructions="Add a 0.0.0.0/0 route to the internet gateway and associate the public subnet",
            source=SOURCE,
        ),
        Fix(
            id="aws-security-group-missing",
            stage=Stage.PROD,
            severity=Severity.WARNING,
            description="Web security group not found",
            detect=_security_group_missing,
            remediate=_create_security_group,
            manual_instructions="Create a security group allowing ports 22, 80 and 443",
            source=SOURCE,
        ),
    ]
