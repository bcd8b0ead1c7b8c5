"""
Console output helpers shared by every pipeline stage.

Stages report progress with plain ``print`` calls; ``stage_log`` tees that
output into a text file inside the stage's results directory.
"""

import sys
import traceback
from contextlib import contextmanager
from pathlib import Path


class OutputLogger:
    """Captures console output and saves to file"""
    def __init__(self, filepath: Path):
        self.terminal = sys.stdout
        self.log = open(filepath, 'w', encoding='utf-8')

    def write(self, message):
        self.terminal.write(message)
        self.log.write(message)

    def flush(self):
        self.terminal.flush()
        self.log.flush()

    def close(self):
        self.log.close()


def print_section(title: str):
    """Print a formatted section header"""
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80 + "\n")


def print_subsection(title: str):
    """Print a formatted subsection header"""
    print(f"\n--- {title} ---\n")


def print_header(title: str, level: int = 1):
    """Print formatted section header"""
    if level == 1:
        print("\n" + "=" * 80)
        print(f"{title.upper()}")
        print("=" * 80)
    elif level == 2:
        print(f"\n[{title}]")
        print("-" * 80)
    else:
        print(f"\n--- {title} ---")


@contextmanager
def stage_log(log_file: Path):
    """
    Tee stdout into ``log_file`` for the duration of a stage.

    Errors are printed with their traceback (so they land in the log too)
    and re-raised. stdout is always restored.
    """
    logger = OutputLogger(log_file)
    sys.stdout = logger

    try:
        yield logger

    except Exception as e:
        print(f"\n✗ ERROR: {str(e)}")
        traceback.print_exc(file=sys.stdout)
        raise

    finally:
        sys.stdout = logger.terminal
        logger.close()
        print(f"\n✓ Console output saved to: {log_file}")
