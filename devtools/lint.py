import subprocess
import sys

from rich import print as rprint

SRC_PATHS = ["mdstore", "tests", "devtools"]


def _run(cmd: list[str]) -> int:
    rprint(f"[bold green]❯ {' '.join(cmd)}[/bold green]")
    try:
        subprocess.run(cmd, text=True, check=True)
    except subprocess.CalledProcessError as e:
        rprint(f"[bold red]Error: {e}[/bold red]")
        return 1
    finally:
        rprint()
    return 0


def main(check_only: bool = False) -> int:
    """
    Sort imports, lint, and format. With `--check`, report problems without fixing them.
    """
    rprint()

    if check_only:
        commands = [
            ["usort", "check", *SRC_PATHS],
            ["ruff", "check", *SRC_PATHS],
            ["black", "--check", *SRC_PATHS],
        ]
    else:
        commands = [
            ["usort", "format", *SRC_PATHS],
            ["ruff", "check", "--fix", *SRC_PATHS],
            ["black", *SRC_PATHS],
        ]
    errcount = sum(_run(cmd) for cmd in commands)

    if errcount != 0:
        rprint(f"[bold red]✗ Lint failed with {errcount} errors.[/bold red]")
    else:
        rprint("[bold green]✔️ Lint passed![/bold green]")
    rprint()

    return errcount


if __name__ == "__main__":
    sys.exit(main(check_only="--check" in sys.argv[1:]))
