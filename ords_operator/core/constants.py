"""
Constants shared by the reconcile phases.

Custom resource coordinates, the finalizer literal, ports, uids and the
textual markers used to classify remote command output.
"""

# Custom resources
CRD_GROUP = "database.oracle.com"
CRD_VERSION = "v1alpha1"
SERVICE_KIND = "OracleRestDataService"
SERVICE_PLURAL = "oraclerestdataservices"
DATABASE_KIND = "SingleInstanceDatabase"
DATABASE_PLURAL = "singleinstancedatabases"

FINALIZER = "database.oracle.com/oraclerestdataservicefinalizer"

# Child object shape
SERVICE_PORT = 8443
SERVICE_PORT_NAME = "client"
DATABASE_PORT = 1521
ORACLE_UID = 54321
DBA_GID = 54321
CONFIG_MOUNT_PATH = "/opt/oracle/ords/config/ords"
INIT_CMD_KEY = "init-cmd"
INIT_CMD_MOUNT_PATH = "/run/secrets/init-cmd"
DATA_VOLUME = "datamount"
INIT_VOLUME = "init-ords-vol"
TERMINATION_GRACE_PERIOD_SECONDS = 30
POD_NAME_SUFFIX_LENGTH = 5

# Defaults
DEFAULT_ORDS_USER = "ORDS_PUBLIC_USER"
DEFAULT_SERVICE_ACCOUNT = "default"
DEFAULT_SECRET_KEY = "oracle_pwd"
DEFAULT_CLAIM_ACCESS_MODE = "ReadWriteMany"

# Status sentinels
VALUE_UNAVAILABLE = "Unavailable"

# Primary database states that count as ready
DATABASE_READY_STATES = ("Healthy", "Ready")

# Output markers
ERROR_MARKER = "ERROR"
ORA_MARKER = "ORA-"
HEALTHY_MARKER = "HTTP/1.1 200 OK"
SYS_USER_MARKER = 'USER is "SYS"'
LOGON_DENIED_CODE = "ORA-01017"
USER_EXISTS_CODE = "ORA-01920"
SCHEMA_ENABLED_MARKER = "STATUS:ENABLED"
APEX_VERSION_MARKER = "APEXVERSION:"

# Event reasons
REASON_WAITING = "Waiting"
REASON_SPEC_ERROR = "Spec Error"
REASON_NO_SECRET = "No Secret"
REASON_LOGON_DENIED = "Logon denied"
REASON_INSTALLING_APEX = "Installing Apex"
REASON_INSTALLED_APEX = "Installed Apex"
REASON_SCHEMA_SKIPPED = "Warning"
REASON_NO_READY_POD = "No Ready Pod"

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"
