"""
Remote Configuration Executor.

Runs shell and SQL scripts inside a target pod over the exec websocket and
offers the marker checks callers use to classify the combined output.
Success or failure is decided by textual markers, never by the transport
result alone.
"""
import asyncio
import re
from typing import Iterable, Optional, Set

import aiohttp
from kubernetes_asyncio.client import ApiException, Configuration, CoreV1Api
from kubernetes_asyncio.stream import WsApiClient

from ords_operator.config.logging import get_logger
from ords_operator.core.constants import ERROR_MARKER
from ords_operator.core.scripts import sqlplus_command
from ords_operator.exceptions import RemoteCommandError
from ords_operator.services import metrics

logger = get_logger(__name__)

_ORA_CODE = re.compile(r"ORA-\d{5}")


def has_error_marker(output: str) -> bool:
    """True when the output carries the generic error marker (any case)."""
    return ERROR_MARKER in (output or "").upper()


def ora_codes(output: str) -> Set[str]:
    """All ``ORA-nnnnn`` codes present in the output."""
    return set(_ORA_CODE.findall(output or ""))


def succeeded_ignoring(output: str, benign_codes: Iterable[str]) -> bool:
    """
    Classify SQL*Plus output as successful.

    Successful when no error marker is present, or when every ORA code
    reported is one of ``benign_codes``.
    """
    codes = ora_codes(output)
    if not codes and not has_error_marker(output):
        return True
    return bool(codes) and codes <= set(benign_codes)


class RemoteExecutor:
    """Executes commands inside pods through the Kubernetes exec API."""

    def __init__(self, configuration: Configuration, timeout_seconds: float = 600):
        self.configuration = configuration
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        pod: str,
        namespace: str,
        script: str,
        container: Optional[str] = None,
        redact: bool = False,
    ) -> str:
        """
        Run ``bash -c <script>`` in the pod and return the combined stdout/stderr.

        Args:
            pod: Pod name
            namespace: Pod namespace
            script: Shell script text
            container: Container name, None for the pod's default container
            redact: Keep the script text out of the logs (it carries credentials)

        Raises:
            RemoteCommandError: If the command could not be executed
        """
        kwargs = {
            "command": ["bash", "-c", script],
            "stderr": True,
            "stdin": False,
            "stdout": True,
            "tty": False,
        }
        if container:
            kwargs["container"] = container

        logger.debug(
            "remote_command_started",
            pod=pod,
            namespace=namespace,
            container=container,
            script="<redacted>" if redact else script,
        )
        try:
            async with WsApiClient(configuration=self.configuration) as ws_api:
                v1_ws = CoreV1Api(api_client=ws_api)
                output = await asyncio.wait_for(
                    v1_ws.connect_get_namespaced_pod_exec(pod, namespace, **kwargs),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError:
            metrics.remote_command_total.labels(result="timeout").inc()
            logger.error("remote_command_timeout", pod=pod, namespace=namespace, timeout=self.timeout_seconds)
            raise RemoteCommandError(pod, f"timed out after {self.timeout_seconds}s")
        except ApiException as e:
            metrics.remote_command_total.labels(result="error").inc()
            logger.error("remote_command_failed", pod=pod, namespace=namespace, status=e.status, error=e.reason)
            raise RemoteCommandError(pod, str(e.reason), output=e.body if isinstance(e.body, str) else "")
        except (aiohttp.ClientError, OSError, ValueError) as e:
            metrics.remote_command_total.labels(result="error").inc()
            logger.error("remote_command_failed", pod=pod, namespace=namespace, error=str(e))
            raise RemoteCommandError(pod, str(e))

        output = output if isinstance(output, str) else str(output or "")
        metrics.remote_command_total.labels(result="completed").inc()
        logger.debug("remote_command_completed", pod=pod, namespace=namespace, output_length=len(output))
        return output

    async def run_sql(self, pod: str, namespace: str, sql: str, redact: bool = False) -> str:
        """Pipe SQL into SQL*Plus as SYSDBA inside the pod."""
        return await self.run(pod, namespace, sqlplus_command(sql), redact=redact)
