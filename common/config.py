import os

BUFFER_SIZE = 1024

# Multicast group shared by every cluster; only the token separates them.
MULTICAST_GROUP = "239.255.77.77"
MULTICAST_PORT = 19333
MULTICAST_TTL = 1
MULTICAST_INTERFACE = os.getenv("DISCOVERY_MULTICAST_IF", "0.0.0.0")

# Payload types
LEADER_INFO = "leader_info"
# older nodes announce with this name
MASTER_INFO = "master_info"

# Roles
LEADER = "leader"
FOLLOWER = "follower"

# Conventional leader endpoint
LEADER_PORT = int(os.getenv("DISCOVERY_LEADER_PORT", "9333"))
REDIRECT_BIND = os.getenv("DISCOVERY_REDIRECT_BIND", "0.0.0.0")
# "auto" -> detect the LAN address
ADVERTISE_HOST = os.getenv("DISCOVERY_ADVERTISE_HOST", "auto")

# Election timing (seconds)
WAIT_MIN = float(os.getenv("DISCOVERY_WAIT_MIN", "2.0"))
WAIT_MAX = float(os.getenv("DISCOVERY_WAIT_MAX", "5.0"))
ANNOUNCE_INTERVAL = float(os.getenv("DISCOVERY_ANNOUNCE_INTERVAL", "1.0"))

# Worker commands
LEADER_CMD = os.getenv("DISCOVERY_LEADER_CMD", "leader")
FOLLOWER_CMD = os.getenv("DISCOVERY_FOLLOWER_CMD", "follower")
LEADER_FLAG = os.getenv("DISCOVERY_LEADER_FLAG", "--leader")

# Remote syslog
SYSLOG_ENABLED = os.getenv("SYSLOG_ENABLED") == "1"
SYSLOG_HOST = os.getenv("SYSLOG_HOST", "auto")
SYSLOG_PORT = int(os.getenv("SYSLOG_PORT", "5514"))
SYSLOG_FACILITY = int(os.getenv("SYSLOG_FACILITY", "16"))  # local0
