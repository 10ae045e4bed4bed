"""Executor startup script rendering."""

from string import Template

from pydantic import BaseModel

from .errors import InvalidSpecError


class _ScriptTemplate(Template):
    # Shell variables keep their "$"
    delimiter = "@"


EXECUTOR_START_SCRIPT = _ScriptTemplate(
    """#!/bin/sh

# This script is used to start tiflow-executor containers in kubernetes cluster

set -uo pipefail

ANNOTATIONS="/etc/podinfo/annotations"

if [ ! -f "${ANNOTATIONS}" ]
then
    echo "${ANNOTATIONS} does't exist, exiting."
    exit 1
fi
source ${ANNOTATIONS} 2>/dev/null

runmode=${runmode:-normal}
if [ "X${runmode}" = "Xdebug" ]
then
    echo "entering debug mode."
    tail -f /dev/null
fi

POD_NAME=${POD_NAME:-$HOSTNAME}
ADVERTISE_ADDR="${POD_NAME}.${PEER_SERVICE_NAME}.${NAMESPACE}.svc@{cluster_domain_suffix}:10241"

ARGS="--data-dir=@{data_dir} \\
--join=@{master_address} \\
--addr=0.0.0.0:10241 \\
--advertise-addr=${ADVERTISE_ADDR} \\
--config=/etc/tiflow-executor/tiflow-executor.toml"

echo "starting tiflow-executor ..."
echo "/tiflow executor ${ARGS}"
exec /tiflow executor ${ARGS}
"""
)


class ExecutorStartScriptModel(BaseModel):
    """Parameters of the executor startup script."""

    cluster_domain: str = ""
    data_dir: str
    master_address: str


def render_executor_start_script(model: ExecutorStartScriptModel) -> str:
    """
    Render the executor startup script.

    Raises:
        InvalidSpecError: If the template cannot be rendered
    """
    suffix = f".{model.cluster_domain}" if model.cluster_domain else ""
    try:
        return EXECUTOR_START_SCRIPT.substitute(
            cluster_domain_suffix=suffix,
            data_dir=model.data_dir,
            master_address=model.master_address,
        )
    except (KeyError, ValueError) as e:
        raise InvalidSpecError(f"failed to render tiflow-executor start script: {e}") from e
