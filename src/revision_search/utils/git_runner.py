"""
Git command runner with dubious ownership handling.

Runs git under an environment that marks the repository as a safe
directory, so searches work when the repository owner differs from the
current user (containers, CI, sudo). Failures are recorded in the exception
log when one is initialized. Commands are never retried.
"""

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional


def get_git_environment(project_dir: Path) -> Dict[str, str]:
    """
    Get environment variables for git commands to handle dubious ownership.

    Args:
        project_dir: Path to the repository

    Returns:
        Dictionary of environment variables for git commands
    """
    env = os.environ.copy()

    env["GIT_CONFIG_COUNT"] = "1"
    env["GIT_CONFIG_KEY_0"] = "safe.directory"
    env["GIT_CONFIG_VALUE_0"] = str(project_dir.resolve())

    # Existing GIT_CONFIG_KEY_n entries shift up one slot to make room for
    # safe.directory at index 0
    config_count = 1
    for key in os.environ:
        if key.startswith("GIT_CONFIG_KEY_"):
            idx = key.replace("GIT_CONFIG_KEY_", "")
            if idx.isdigit():
                new_idx = int(idx) + 1
                env[f"GIT_CONFIG_KEY_{new_idx}"] = os.environ[key]
                if f"GIT_CONFIG_VALUE_{idx}" in os.environ:
                    env[f"GIT_CONFIG_VALUE_{new_idx}"] = os.environ[
                        f"GIT_CONFIG_VALUE_{idx}"
                    ]
                config_count = max(config_count, new_idx + 1)

    env["GIT_CONFIG_COUNT"] = str(config_count)

    return env


def run_git_command(
    cmd: List[str],
    cwd: Path,
    check: bool = True,
    capture_output: bool = True,
    text: bool = True,
    timeout: Optional[float] = None,
    **kwargs,
) -> subprocess.CompletedProcess:
    """
    Run a git command with proper environment handling for dubious ownership.

    Args:
        cmd: Git command as a list (e.g., ["git", "ls-tree", "HEAD"])
        cwd: Working directory for the command
        check: Whether to raise CalledProcessError on non-zero exit
        capture_output: Whether to capture stdout and stderr
        text: Whether to decode output as text
        timeout: Optional timeout in seconds
        **kwargs: Additional arguments to pass to subprocess.run

    Returns:
        CompletedProcess instance with the command result

    Raises:
        subprocess.CalledProcessError: If check=True and command fails
        subprocess.TimeoutExpired: If timeout is exceeded
    """
    if not cmd or cmd[0] != "git":
        raise ValueError("Command must start with 'git'")

    env = get_git_environment(cwd)

    if "env" in kwargs:
        env.update(kwargs.pop("env"))

    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            check=check,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            env=env,
            **kwargs,
        )
    except subprocess.CalledProcessError as e:
        _log_git_failure(e, cmd, cwd)
        raise
    except subprocess.TimeoutExpired as e:
        _log_git_timeout(e, cmd, cwd, timeout)
        raise


def _log_git_failure(
    exception: subprocess.CalledProcessError,
    cmd: List[str],
    cwd: Path,
) -> None:
    """Log a git command failure with full context."""
    from .exception_logger import ExceptionLogger

    logger = ExceptionLogger.get_instance()
    if logger:
        context = {
            "git_command": " ".join(cmd),
            "cwd": str(cwd),
            "returncode": exception.returncode,
            "stdout": getattr(exception, "stdout", ""),
            "stderr": getattr(exception, "stderr", ""),
        }
        logger.log_exception(
            Exception(f"Git command failed: {' '.join(cmd)}"), context=context
        )


def _log_git_timeout(
    exception: subprocess.TimeoutExpired,
    cmd: List[str],
    cwd: Path,
    timeout: Optional[float],
) -> None:
    """Log a git command timeout with full context."""
    from .exception_logger import ExceptionLogger

    logger = ExceptionLogger.get_instance()
    if logger:
        context = {
            "git_command": " ".join(cmd),
            "cwd": str(cwd),
            "timeout": timeout,
        }
        logger.log_exception(
            Exception(f"Git command timeout: {' '.join(cmd)}"), context=context
        )


def is_git_repository(project_dir: Path) -> bool:
    """
    Check if a directory is a git repository.

    This properly handles dubious ownership errors.

    Args:
        project_dir: Path to check

    Returns:
        True if the directory is a git repository, False otherwise
    """
    try:
        run_git_command(
            ["git", "rev-parse", "--git-dir"],
            cwd=project_dir,
            check=True,
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
