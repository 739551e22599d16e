"""
AWS provider API used by the network fixes.

``find_*`` lookups are safe to repeat and return an id, or None when the
resource is confirmed absent; AWS errors propagate so a failed lookup is never
mistaken for a missing resource. ``create_*`` calls are the units of
remediation work. Every resource is tagged ``stack:project=<name>``.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PROJECT_TAG = "stack:project"
SUBNET_TYPE_TAG = "stack:subnet-type"

DEFAULT_INGRESS_PORTS = (22, 80, 443)


def _first(items: List[Dict[str, Any]], key: str) -> Optional[str]:
    if not items:
        return None
    return items[0].get(key)


class AwsProvider:
    """EC2 networking lookups and creation for one project."""

    def __init__(self, aws_client, project_name: str, region: Optional[str] = None):
        """
        Args:
            aws_client: AWSClientManager
            project_name: Value of the project tag
            region: Region override
        """
        self.aws_client = aws_client
        self.project_name = project_name
        self.region = region

    @property
    def ec2(self):
        return self.aws_client.get_client("ec2", self.region)

    def _project_filter(self) -> Dict[str, Any]:
        return {"Name": f"tag:{PROJECT_TAG}", "Values": [self.project_name]}

    def _tag_spec(self, resource_type: str, extra: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        tags = [
            {"Key": PROJECT_TAG, "Value": self.project_name},
            {"Key": "Name", "Value": f"{self.project_name}-{resource_type}"},
        ]
        for key, value in (extra or {}).items():
            tags.append({"Key": key, "Value": value})
        return [{"ResourceType": resource_type, "Tags": tags}]

    # VPC

    def find_vpc(self) -> Optional[str]:
        response = self.ec2.describe_vpcs(Filters=[self._project_filter()])
        return _first(response.get("Vpcs", []), "VpcId")

    def create_vpc(self, cidr_block: str) -> str:
        response = self.ec2.create_vpc(CidrBlock=cidr_block, TagSpecifications=self._tag_spec("vpc"))
        vpc_id = response["Vpc"]["VpcId"]
        self.ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={"Value": True})
        self.ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={"Value": True})
        logger.info(f"Created VPC {vpc_id}")
        return vpc_id

    # Subnets

    def find_subnet(self, subnet_type: str = "public") -> Optional[str]:
        response = self.ec2.describe_subnets(Filters=[
            self._project_filter(),
            {"Name": f"tag:{SUBNET_TYPE_TAG}", "Values": [subnet_type]},
        ])
        return _first(response.get("Subnets", []), "SubnetId")

    def create_subnet(self, vpc_id: str, cidr_block: str, subnet_type: str = "public") -> str:
        zones = self.ec2.describe_availability_zones(
            Filters=[{"Name": "state", "Values": ["available"]}]
        ).get("AvailabilityZones", [])
        zone = _first(zones, "ZoneName")

        kwargs = {
            "VpcId": vpc_id,
            "CidrBlock": cidr_block,
            "TagSpecifications": self._tag_spec("subnet", {SUBNET_TYPE_TAG: subnet_type}),
        }
        if zone:
            kwargs["AvailabilityZone"] = zone
        subnet_id = self.ec2.create_subnet(**kwargs)["Subnet"]["SubnetId"]

        if subnet_type == "public":
            self.ec2.modify_subnet_attribute(SubnetId=subnet_id, MapPublicIpOnLaunch={"Value": True})
        logger.info(f"Created {subnet_type} subnet {subnet_id} in {zone or 'default zone'}")
        return subnet_id

    # Internet gateway and routing

    def find_internet_gateway(self, vpc_id: str) -> Optional[str]:
        response = self.ec2.describe_internet_gateways(
            Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}]
        )
        return _first(response.get("InternetGateways", []), "InternetGatewayId")

    def create_internet_gateway(self, vpc_id: str) -> str:
        igw_id = self.ec2.create_internet_gateway(
            TagSpecifications=self._tag_spec("internet-gateway")
        )["InternetGateway"]["InternetGatewayId"]
        self.ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
        logger.info(f"Created and attached internet gateway {igw_id}")
        return igw_id

    def find_public_route_table(self, vpc_id: str) -> Optional[str]:
        """Route table in the VPC with a default route to an internet gateway."""
        response = self.ec2.describe_route_tables(Filters=[
            {"Name": "vpc-id", "Values": [vpc_id]},
            {"Name": "route.destination-cidr-block", "Values": ["0.0.0.0/0"]},
        ])
        for table in response.get("RouteTables", []):
            for route in table.get("Routes", []):
                if route.get("DestinationCidrBlock") == "0.0.0.0/0" and route.get("GatewayId", "").startswith("igw-"):
                    return table["RouteTableId"]
        return None

    def create_public_route_table(self, vpc_id: str, igw_id: str, subnet_id: str) -> str:
        table_id = self.ec2.create_route_table(
            VpcId=vpc_id, TagSpecifications=self._tag_spec("route-table")
        )["RouteTable"]["RouteTableId"]
        self.ec2.create_route(RouteTableId=table_id, DestinationCidrBlock="0.0.0.0/0", GatewayId=igw_id)
        self.ec2.associate_route_table(RouteTableId=table_id, SubnetId=subnet_id)
        logger.info(f"Created public route table {table_id}")
        return table_id

    # Security groups

    def security_group_name(self) -> str:
        return f"{self.project_name}-web"

    def find_security_group(self, vpc_id: str) -> Optional[str]:
        response = self.ec2.describe_security_groups(Filters=[
            {"Name": "vpc-id", "Values": [vpc_id]},
            {"Name": "group-name", "Values": [self.security_group_name()]},
        ])
        return _first(response.get("SecurityGroups", []), "GroupId")

    def create_security_group(self, vpc_id: str, ports=DEFAULT_INGRESS_PORTS) -> str:
        group_id = self.ec2.create_security_group(
            GroupName=self.security_group_name(),
            Description=f"Web and SSH access for {self.project_name}",
            VpcId=vpc_id,
            TagSpecifications=self._tag_spec("security-group"),
        )["GroupId"]
        self.ec2.authorize_security_group_ingress(
            GroupId=group_id,
            IpPermissions=[
                {
                    "IpProtocol": "tcp",
                    "FromPort": port,
                    "ToPort": port,
                    "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
                }
                for port in ports
            ],
        )
        logger.info(f"Created security group {group_id}")
        return group_id
