#!/usr/bin/env python3
"""AWS CDK entrypoint for provisioning the web application network.

The topology is declared as a dependency graph and applied into the stack in
dependency order. Update or override the environment variables to target a
different account or region.
"""
import os

import aws_cdk as cdk
from aws_cdk import Environment

from networking.networking_stack import NetworkingStack

app = cdk.App()

env = Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)

NetworkingStack(app, "NetworkingStack", env=env)


app.synth()
