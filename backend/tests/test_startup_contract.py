"""Guards for backend container startup behavior."""

import os
import stat
import subprocess
import tempfile
from pathlib import Path

RECONCILE_COMMAND = "uv run python scripts/reconcile_friendships.py"


def _backend_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _write_executable(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _run_start_script(
    *,
    reconcile_on_startup: str,
    uv_should_fail: bool,
) -> tuple[subprocess.CompletedProcess[str], str]:
    backend_root = _backend_root()
    script = backend_root / "scripts" / "start.sh"

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        fake_bin = temp_path / "bin"
        fake_bin.mkdir(parents=True, exist_ok=True)
        log_path = temp_path / "calls.log"

        _write_executable(
            fake_bin / "alembic",
            "#!/bin/sh\n"
            'echo "alembic $*" >> "$FAKE_STARTUP_LOG"\n'
            "exit 0\n",
        )
        _write_executable(
            fake_bin / "uv",
            "#!/bin/sh\n"
            'echo "uv $*" >> "$FAKE_STARTUP_LOG"\n'
            'if [ "${FAKE_UV_SHOULD_FAIL:-0}" = "1" ]; then\n'
            "  exit 1\n"
            "fi\n"
            "exit 0\n",
        )
        _write_executable(
            fake_bin / "uvicorn",
            "#!/bin/sh\n"
            'echo "uvicorn $*" >> "$FAKE_STARTUP_LOG"\n'
            "exit 0\n",
        )

        env = os.environ.copy()
        env.update(
            {
                "PATH": f"{fake_bin}:{env.get('PATH', '')}",
                "FAKE_STARTUP_LOG": str(log_path),
                "FAKE_UV_SHOULD_FAIL": "1" if uv_should_fail else "0",
                "FRIENDSHIP_RECONCILE_ON_STARTUP": reconcile_on_startup,
            }
        )
        completed = subprocess.run(
            [str(script)],
            cwd=str(backend_root),
            env=env,
            capture_output=True,
            text=True,
            check=False,
            timeout=10,
        )

        log_output = ""
        if log_path.exists():
            log_output = log_path.read_text(encoding="utf-8")

    return completed, log_output


def test_start_script_orders_migration_reconcile_and_server() -> None:
    script = (_backend_root() / "scripts" / "start.sh").read_text(encoding="utf-8")
    migration_command = "alembic upgrade head"
    uvicorn_exec = "exec uvicorn"

    assert migration_command in script
    assert RECONCILE_COMMAND in script
    assert uvicorn_exec in script
    assert script.index(migration_command) < script.index(RECONCILE_COMMAND)
    assert script.index(RECONCILE_COMMAND) < script.index(uvicorn_exec)


def test_start_script_keeps_startup_alive_when_reconcile_fails() -> None:
    completed, log_output = _run_start_script(
        reconcile_on_startup="true",
        uv_should_fail=True,
    )

    assert completed.returncode == 0
    assert "alembic upgrade head" in log_output
    assert RECONCILE_COMMAND in log_output
    assert "uvicorn main:app --host 0.0.0.0 --port 8000" in log_output


def test_start_script_skips_reconcile_by_default() -> None:
    completed, log_output = _run_start_script(
        reconcile_on_startup="false",
        uv_should_fail=False,
    )

    assert completed.returncode == 0
    assert RECONCILE_COMMAND not in log_output
    assert "uvicorn main:app --host 0.0.0.0 --port 8000" in log_output


def test_dockerfile_uses_single_startup_script() -> None:
    dockerfile = (_backend_root() / "Dockerfile").read_text(encoding="utf-8")
    assert 'CMD ["./scripts/start.sh"]' in dockerfile
