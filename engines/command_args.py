"""Maps ExecArgs onto codex CLI flags and the equivalent HTTP config section"""
import platform
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.options import ExecArgs

# platform.machine() values -> target triple architecture
_ARCHES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}

_PLATFORM_SUFFIXES = {
    "linux": "unknown-linux-musl",
    "android": "unknown-linux-musl",
    "darwin": "apple-darwin",
    "win32": "pc-windows-msvc",
}

VENDOR_ROOT = Path(__file__).resolve().parent.parent / "vendor"


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def build_command_args(args: ExecArgs) -> List[str]:
    """Argument vector for ``codex exec`` (without the executable itself)"""
    command_args = ["exec", "--experimental-json"]

    if args.model:
        command_args.extend(["--model", args.model])

    if args.sandbox_mode:
        command_args.extend(["--sandbox", args.sandbox_mode])

    if args.working_directory:
        command_args.extend(["--cd", args.working_directory])

    for directory in args.additional_directories:
        command_args.extend(["--add-dir", directory])

    if args.skip_git_repo_check:
        command_args.append("--skip-git-repo-check")

    if args.output_schema_file:
        command_args.extend(["--output-schema", args.output_schema_file])

    if args.model_reasoning_effort:
        command_args.extend(["--config", f'model_reasoning_effort="{args.model_reasoning_effort}"'])

    if args.network_access_enabled is not None:
        command_args.extend([
            "--config",
            f"sandbox_workspace_write.network_access={_toml_bool(args.network_access_enabled)}",
        ])

    if args.web_search_enabled is not None:
        command_args.extend([
            "--config",
            f"features.web_search_request={_toml_bool(args.web_search_enabled)}",
        ])

    if args.approval_policy:
        command_args.extend(["--config", f'approval_policy="{args.approval_policy}"'])

    for image in args.images:
        command_args.extend(["--image", image])

    if args.thread_id:
        command_args.extend(["resume", args.thread_id])

    return command_args


def build_request_config(args: ExecArgs) -> Dict[str, Any]:
    """The ``config`` section of a /responses request.

    Keys mirror the ``--config`` overrides and flags above so both transports
    are configured the same way for the same ExecArgs.
    """
    config: Dict[str, Any] = {}
    if args.sandbox_mode:
        config["sandbox"] = args.sandbox_mode
    if args.model_reasoning_effort:
        config["model_reasoning_effort"] = args.model_reasoning_effort
    if args.network_access_enabled is not None:
        config.setdefault("sandbox_workspace_write", {})["network_access"] = args.network_access_enabled
    if args.web_search_enabled is not None:
        config.setdefault("features", {})["web_search_request"] = args.web_search_enabled
    if args.approval_policy:
        config["approval_policy"] = args.approval_policy
    if args.additional_directories:
        config["additional_directories"] = list(args.additional_directories)
    if args.working_directory:
        config["working_directory"] = args.working_directory
    return config


def find_codex_path(
    system: Optional[str] = None,
    machine: Optional[str] = None,
    vendor_root: Path = VENDOR_ROOT,
) -> str:
    """Location of the bundled codex binary for this platform"""
    system = system or sys.platform
    machine = (machine or platform.machine()).lower()

    suffix = next((s for prefix, s in _PLATFORM_SUFFIXES.items() if system.startswith(prefix)), None)
    arch = _ARCHES.get(machine)
    if not suffix or not arch:
        raise RuntimeError(f"Unsupported platform: {system} ({machine})")

    target_triple = f"{arch}-{suffix}"
    binary_name = "codex.exe" if system.startswith("win32") else "codex"
    return str(vendor_root / target_triple / "codex" / binary_name)
