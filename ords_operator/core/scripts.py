"""
Shell and SQL scripts executed inside pods.

SQL is piped into SQL*Plus running as SYSDBA inside the primary database
pod; the remaining scripts run inside the REST Data Service pod against the
ORDS installation. Templates use ``str.format`` fields, so literal shell
braces are doubled.
"""
from typing import List

from ords_operator.core.constants import CONFIG_MOUNT_PATH, SERVICE_PORT

SQLPLUS_CLI = "sqlplus -s / as sysdba"

# Bootstrap script mounted into the init-ords container through the init secret
INIT_ORDS_CMD = """#!/bin/bash
set -e
CONFIG_DIR={config}
if [ -f "${{CONFIG_DIR}}/databases/default/pool.xml" ]; then
  echo "ORDS already configured in ${{CONFIG_DIR}}"
  exit 0
fi
ords --config "${{CONFIG_DIR}}" install \\
  --admin-user SYS \\
  --db-hostname "${{ORACLE_HOST}}" \\
  --db-port "${{ORACLE_PORT}}" \\
  --db-servicename "${{ORACLE_SERVICE}}" \\
  --feature-db-api true \\
  --feature-rest-enabled-sql true \\
  --feature-sdw true \\
  --gateway-mode proxied \\
  --gateway-user APEX_PUBLIC_USER \\
  --proxy-user \\
  --password-stdin <<EOF
${{ORACLE_PWD}}
${{ORDS_PWD}}
EOF
""".format(config=CONFIG_MOUNT_PATH)

VALIDATE_ADMIN_PASSWORD_SQL = "CONN SYS/{password} AS SYSDBA\nSHOW USER"

SET_ADMIN_USERS_SQL = """CREATE USER C##DBAPI_CDB_ADMIN IDENTIFIED BY {password} CONTAINER=ALL ACCOUNT UNLOCK;
GRANT SYSDBA, CREATE SESSION TO C##DBAPI_CDB_ADMIN CONTAINER=ALL;
CREATE USER C##_DBAPI_PDB_ADMIN IDENTIFIED BY {password} CONTAINER=ALL ACCOUNT UNLOCK;
GRANT CREATE SESSION, SYSDBA TO C##_DBAPI_PDB_ADMIN CONTAINER=ALL;
ALTER USER C##_DBAPI_PDB_ADMIN SET CONTAINER_DATA=ALL CONTAINER=CURRENT;"""

DROP_ADMIN_USERS_SQL = """DROP USER C##DBAPI_CDB_ADMIN CASCADE;
DROP USER C##_DBAPI_PDB_ADMIN CASCADE;"""

GET_PDBS_SQL = """SET HEADING OFF
SET FEEDBACK OFF
SELECT PDB_NAME FROM DBA_PDBS ORDER BY PDB_ID;"""

GET_SCHEMA_STATUS_SQL = """ALTER SESSION SET CONTAINER={pdb};
SET HEADING OFF
SELECT 'STATUS:'||STATUS FROM ORDS_METADATA.ORDS_SCHEMAS WHERE UPPER(PARSING_SCHEMA) = UPPER('{schema}');"""

ENABLE_SCHEMA_SQL = """ALTER SESSION SET CONTAINER={pdb};
DECLARE
  n NUMBER;
BEGIN
  SELECT COUNT(*) INTO n FROM DBA_USERS WHERE USERNAME = '{schema}';
  IF n = 0 THEN
    EXECUTE IMMEDIATE 'CREATE USER {schema} IDENTIFIED BY {password}';
  END IF;
END;
/
GRANT CONNECT, RESOURCE, UNLIMITED TABLESPACE TO {schema};
BEGIN
  ORDS.ENABLE_SCHEMA(
    p_enabled => {enabled},
    p_schema => '{schema}',
    p_url_mapping_type => 'BASE_PATH',
    p_url_mapping_pattern => '{url_mapping}',
    p_auto_rest_auth => FALSE);
  COMMIT;
END;
/"""

GET_SESSION_INFO_SQL = """SET HEADING OFF
SET FEEDBACK OFF
SELECT S.SID || ',' || S.SERIAL# FROM V\\$SESSION S WHERE S.USERNAME = '{user}';"""

KILL_SESSION_SQL = "ALTER SYSTEM KILL SESSION '{session}' IMMEDIATE;"

GET_ORDS_STATUS_CMD = (
    "curl -sSkv -X GET https://localhost:{port}/ords/_/db-api/stable/metadata-catalog/ 2>&1"
).format(port=SERVICE_PORT)

UNINSTALL_ORDS_CMD = "ords --config " + CONFIG_MOUNT_PATH + """ uninstall \\
  --admin-user SYS \\
  --db-hostname "${{ORACLE_HOST}}" \\
  --db-port "${{ORACLE_PORT}}" \\
  --db-servicename "${{ORACLE_SERVICE}}" \\
  --force \\
  --password-stdin <<< "{password}"
"""

APEX_SQLPLUS = 'sqlplus -s "sys/{admin_password}@${{ORACLE_HOST}}:${{ORACLE_PORT}}/{pdb} as sysdba"'

INSTALL_APEX_CMD = (
    'cd "${{APEX_HOME:-/opt/oracle/apex}}" && echo -e "'
    "@apexins.sql SYSAUX SYSAUX TEMP /i/\\n"
    "@apex_rest_config_core.sql {apex_password} {apex_password}\\n"
    "ALTER USER APEX_PUBLIC_USER IDENTIFIED BY {apex_password} ACCOUNT UNLOCK;\\n"
    "ALTER USER APEX_LISTENER IDENTIFIED BY {apex_password} ACCOUNT UNLOCK;\\n"
    "ALTER USER APEX_REST_PUBLIC_USER IDENTIFIED BY {apex_password} ACCOUNT UNLOCK;"
    '" | ' + APEX_SQLPLUS
)

IS_APEX_INSTALLED_CMD = (
    'echo -e "SET HEADING OFF\\n'
    "SELECT 'APEXVERSION:'||VERSION FROM DBA_REGISTRY WHERE COMP_ID = 'APEX';"
    '" | ' + APEX_SQLPLUS
)

SET_APEX_USERS_CMD = """ords --config {config} config --db-pool default secret --password-stdin db.password <<< "{{apex_password}}" && \\
ords --config {config} config --db-pool default set plsql.gateway.mode proxied && \\
ords --config {config} config --db-pool default set db.username APEX_PUBLIC_USER
""".format(config=CONFIG_MOUNT_PATH)


def sqlplus_command(sql: str) -> str:
    """Wrap SQL text into a shell command piping it into SQL*Plus as SYSDBA."""
    return f'echo -e "{sql}" | {SQLPLUS_CLI}'


def parse_session_rows(output: str) -> List[str]:
    """
    Extract ``sid,serial#`` rows from the session query output.

    Lines without a comma are column headers, separators or feedback.
    """
    return [line.strip() for line in output.splitlines() if "," in line]


def kill_sessions_sql(sessions: List[str]) -> str:
    """Build one kill statement per session row."""
    return "\n".join(KILL_SESSION_SQL.format(session=session) for session in sessions)
