import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "cfmutspec", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "cfMutSpec" in cp.stdout or "cfmutspec" in cp.stdout.lower()


def test_cli_version() -> None:
    from cfmutspec import __version__

    cp = subprocess.run(
        [sys.executable, "-m", "cfmutspec", "--version"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert __version__ in cp.stdout
