import os
from typing import Optional

from attrs import define, field

import common.constants as constants


@define(slots=True, frozen=True)
class StackContext:
    env: str = field(
        factory=lambda: os.getenv(constants.DEPLOY_ENV_VAR, constants.DEFAULT_ENV),
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    service: str = field(default=constants.SERVICE_NAME, init=False)
    domain: str = field(default=constants.DOMAIN)
    component: str = field(default=constants.COMPONENT)

    @property
    def aws_region(self) -> str:
        return (
            os.getenv("CDK_DEFAULT_REGION")
            or os.getenv("AWS_REGION")
            or constants.DEFAULT_REGION
        )

    # ---------- naming ----------
    def build_resource_name(
        self, resource_type: str, action: Optional[str] = None
    ) -> str:
        """Build resource name with optional action.

        Examples:
            - Without action: webapp-network-topology-vpc-dev
            - With action: webapp-network-topology-public-routetable-dev
        """
        if action:
            return f"{self.service}-{self.domain}-{self.component}-{action}-{resource_type}-{self.env}".lower()
        return f"{self.service}-{self.domain}-{self.component}-{resource_type}-{self.env}".lower()

    def build_short_name(self, resource_type: str) -> str:
        """Names for load balancers and target groups, capped at 32 characters."""
        return f"{self.service}-{resource_type}-{self.env}".lower()[:32]

    # ---------- tagging ----------
    def build_tags(
        self, resource_type: str, action: Optional[str] = None
    ) -> list[dict[str, str]]:
        return [
            {"Key": "Name", "Value": self.build_resource_name(resource_type, action)},
            {"Key": "Service", "Value": self.service},
            {"Key": "Environment", "Value": self.env},
        ]
