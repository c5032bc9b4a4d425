DEFAULT_ENV = "dev"
DEFAULT_REGION = "us-east-1"

# Naming convention components
SERVICE_NAME = "webapp"  # The application name
DOMAIN = "network"  # The domain being provisioned
COMPONENT = "topology"  # The functional component/subsystem

# Environment variables
LOG_LEVEL_ENV = "LOG_LEVEL"
DEPLOY_ENV_VAR = "DEPLOY_ENV"
MAX_CONCURRENCY_ENV = "PROVISIONER_MAX_CONCURRENCY"
ROLLBACK_ON_FAILURE_ENV = "PROVISIONER_ROLLBACK_ON_FAILURE"
MAX_ATTEMPTS_ENV = "PROVISIONER_MAX_ATTEMPTS"
BACKOFF_SECONDS_ENV = "PROVISIONER_BACKOFF_SECONDS"
BACKOFF_MULTIPLIER_ENV = "PROVISIONER_BACKOFF_MULTIPLIER"

# Retry defaults
DEFAULT_MAX_ATTEMPTS = 1
DEFAULT_BACKOFF_SECONDS = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
MAX_BACKOFF_SECONDS = 30.0

# Output every backend must return from a create call
ID_OUTPUT = "id"

# Network layout
VPC_CIDR = "10.20.0.0/16"
ANY_IPV4_CIDR = "0.0.0.0/0"
PUBLIC_SUBNETS = (
    ("Subnet1", "us-east-1a", "10.20.1.0/24"),
    ("Subnet2", "us-east-1b", "10.20.2.0/24"),
)
PRIVATE_SUBNETS = (
    ("Subnet3", "us-east-1c", "10.20.3.0/24"),
    ("Subnet4", "us-east-1d", "10.20.4.0/24"),
)

# Compute
INSTANCE_TYPE = "t2.micro"
AMAZON_LINUX_AMI = (
    "resolve:ssm:/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2"
)
KEY_PAIR_NAME = "webapp-key-pair"
ASG_MIN_CAPACITY = 2
ASG_MAX_CAPACITY = 4

# Ports
SSH_PORT = 22
HTTP_PORT = 80
