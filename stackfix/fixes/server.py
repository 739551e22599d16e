"""
Remote server checks for staging and prod.

Each environment with a host gets docker and git installed and a
``~/.stack/{project}/.env.{stage}`` file that matches the stage's
environment secrets in the vault. All commands go through
``context.remote``, which resolves SSH credentials once per host per pass.
"""

import logging
import re
import shlex
from typing import Dict, List

from ..core.errors import DetectionError, RemediationFailure
from ..core.models import Fix, Severity, Stage

logger = logging.getLogger(__name__)

SOURCE = "server"
REMOTE_STAGES = (Stage.STAGING, Stage.PROD)

HEREDOC_MARKER = "STACKFIX_ENV_EOF"
_NEEDS_QUOTES = re.compile(r"[\s\"'$`\\]")

DOCKER_INSTALL = "curl -fsSL https://get.docker.com | sh && sudo usermod -aG docker $USER"
GIT_INSTALL = "sudo apt-get update && sudo apt-get install -y git"


def render_env_file(values: Dict[str, str]) -> str:
    """
    Render ``KEY=value`` lines; values with whitespace, quotes, ``$``,
    backticks or backslashes are double-quoted and escaped.
    """
    lines = ["# Environment variables - written by stackfix", ""]
    for key, value in values.items():
        if _NEEDS_QUOTES.search(value):
            escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
            lines.append(f'{key}="{escaped}"')
        else:
            lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def parse_env_file(content: str) -> Dict[str, str]:
    """Inverse of render_env_file; comments and blank lines are skipped."""
    values = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = _unescape(value[1:-1])
        values[key.strip()] = value
    return values


def _unescape(value: str) -> str:
    out = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        out.append("\n" if nxt == "n" else nxt)
    return "".join(out)


def _home_path(relative: str) -> str:
    # $HOME expands on the host; the rest is quoted as a single word.
    return f'"$HOME"/{shlex.quote(relative)}'


def remote_env_dir(project_name: str) -> str:
    return _home_path(f".stack/{project_name}")


def remote_env_path(project_name: str, stage: Stage) -> str:
    return _home_path(f".stack/{project_name}/.env.{stage.value}")


def _targets(context, stage: Stage):
    return [env for env in context.environments_for(stage).values() if env.target_host]


def _tool_fix_id(stage: Stage, tool: str) -> str:
    return f"{stage.value}-{tool}-missing"


def _has_tool(context, env, stage: Stage, tool: str) -> bool:
    check = f"command -v {tool} >/dev/null 2>&1 && echo yes || echo no"
    output = context.remote.exec(env, check, stage)
    if output not in ("yes", "no"):
        raise DetectionError(_tool_fix_id(stage, tool), f"unexpected output from {env.target_host}: {output!r}")
    return output == "yes"


def _tool_missing(stage: Stage, tool: str):
    def detect(context) -> bool:
        return any(not _has_tool(context, env, stage, tool) for env in _targets(context, stage))
    return detect


def _install_tool(stage: Stage, tool: str, command: str):
    def remediate(context) -> bool:
        for env in _targets(context, stage):
            if _has_tool(context, env, stage, tool):
                continue
            logger.info(f"Installing {tool} on {env.target_host}")
            context.remote.exec(env, command, stage)
            if not _has_tool(context, env, stage, tool):
                raise RemediationFailure(_tool_fix_id(stage, tool), f"{tool} still missing on {env.target_host} after install")
        return True
    return remediate


def _expected_env(context, stage: Stage) -> Dict[str, str]:
    if context.vault is None or not context.vault.exists:
        return {}
    return context.vault.get_environment_secrets(stage)


def _deployed_env(context, env, stage: Stage) -> Dict[str, str]:
    path = remote_env_path(context.config.project_name, stage)
    content = context.remote.exec(env, f"cat {path} 2>/dev/null || true", stage)
    return parse_env_file(content)


def _env_file_outdated(stage: Stage):
    def detect(context) -> bool:
        expected = _expected_env(context, stage)
        if not expected:
            return False  # nothing to deploy until the vault holds secrets
        for env in _targets(context, stage):
            if _deployed_env(context, env, stage) != expected:
                return True
        return False

    def remediate(context) -> bool:
        expected = _expected_env(context, stage)
        if not expected:
            return True
        project = context.config.project_name
        path = remote_env_path(project, stage)
        content = render_env_file(expected)
        command = (
            f"mkdir -p {remote_env_dir(project)} && cat > {path} << '{HEREDOC_MARKER}'\n"
            f"{content}{HEREDOC_MARKER}\n"
            f"chmod 600 {path}"
        )
        for env in _targets(context, stage):
            if _deployed_env(context, env, stage) == expected:
                continue
            context.remote.exec(env, command, stage)
            logger.info(f"Wrote {len(expected)} variables to {path} on {env.target_host}")
        return True

    return detect, remediate


def build_fixes() -> List[Fix]:
    """Per-stage server fixes: tooling first, then the deployed env file."""
    fixes = []
    for stage in REMOTE_STAGES:
        fixes.append(Fix(
            id=_tool_fix_id(stage, "docker"),
            stage=stage,
            severity=Severity.CRITICAL,
            description="Docker not installed on server",
            detect=_tool_missing(stage, "docker"),
            remediate=_install_tool(stage, "docker", DOCKER_INSTALL),
            manual_instructions="Install Docker: curl -fsSL https://get.docker.com | sh",
            source=SOURCE,
        ))
        fixes.append(Fix(
            id=_tool_fix_id(stage, "git"),
            stage=stage,
            severity=Severity.WARNING,
            description="Git not installed on server",
            detect=_tool_missing(stage, "git"),
            remediate=_install_tool(stage, "git", GIT_INSTALL),
            manual_instructions="Install Git: sudo apt-get install -y git",
            source=SOURCE,
        ))

        detect, remediate = _env_file_outdated(stage)
        fixes.append(Fix(
            id=f"{stage.value}-env-file-outdated",
            stage=stage,
            severity=Severity.CRITICAL,
            description=f".env.{stage.value} on server does not match vault {stage.value}_envs",
            detect=detect,
            remediate=remediate,
            manual_instructions=f"Run: stackfix fix --{stage.value}",
            source=SOURCE,
        ))
    return fixes
