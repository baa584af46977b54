"""Simple .env loader and runner.

Usage:
  - Import and call `load()` from Python: `from set_env_vars import load; load()`
  - Print which settings are configured:
      python set_env_vars.py --status
  - Run a command with the .env loaded:
      python set_env_vars.py --exec python main.py
"""
from __future__ import annotations

import json
import os
import subprocess
from typing import Dict

# (name, default) for every setting the server reads.
SETTINGS = (
    ("OPENAI_BASE_URL", "https://api.openai.com/v1"),
    ("OPENAI_MODEL", "gpt-4"),
    ("OPENAI_VISION_MODEL", "gpt-4o-mini"),
    ("OPENAI_TIMEOUT_S", None),
    ("OCR_BACKEND", "openai"),
    ("MATHPIX_APP_ID", None),
    ("MATHPIX_BASE_URL", "https://api.mathpix.com/v3"),
    ("MATHPIX_TIMEOUT_S", None),
    ("PORT", "3001"),
    ("LOG_LEVEL", "INFO"),
)


def _parse_dotenv(path: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for raw in fh:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].lstrip()
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip()
                if not key:
                    continue
                if len(val) >= 2 and ((val[0] == val[-1] == '"') or (val[0] == val[-1] == "'")):
                    val = val[1:-1]
                pairs[key] = val
    except FileNotFoundError:
        return {}
    return pairs


def load(path: str = ".env", override: bool = False) -> Dict[str, str]:
    """Load key=value pairs from `path` into os.environ.

    Args:
        path: path to .env file (default: .env)
        override: if True, overwrite existing environment variables

    Returns the pairs that were applied.
    """
    applied: Dict[str, str] = {}
    for k, v in _parse_dotenv(path).items():
        if override or k not in os.environ:
            os.environ[k] = v
            applied[k] = v
    return applied


def status() -> Dict[str, object]:
    """Effective value of each setting; secrets are never included."""
    out: Dict[str, object] = {}
    for name, default in SETTINGS:
        value = os.environ.get(name)
        if name == "MATHPIX_APP_ID":
            out["MATHPIX_APP_ID_set"] = bool(value)
            continue
        out[name] = value if value else default
    return out


def run_command_with_env(cmd: list[str]) -> int:
    """Run a command (list form) with the current process environment and return exit code."""
    return subprocess.run(cmd, env=os.environ).returncode


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Load .env and optionally run a command with it.")
    parser.add_argument("--env-file", "-e", default=".env", help="Path to .env file")
    parser.add_argument("--override", action="store_true", help="Override existing env vars")
    parser.add_argument("--status", action="store_true", help="Print the effective settings as JSON")
    parser.add_argument("--exec", "-x", nargs=argparse.REMAINDER, help="Command to run with env loaded")
    args = parser.parse_args()

    load(args.env_file, override=args.override)

    if args.status:
        print(json.dumps(status(), indent=2))
    if args.exec:
        cmd = args.exec
        if not cmd:
            parser.error("--exec requires a command to run")
        rc = run_command_with_env(cmd)
        raise SystemExit(rc)
    elif not args.status:
        print(f"Loaded environment from {args.env_file}")
