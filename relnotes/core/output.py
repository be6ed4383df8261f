import sys
from pathlib import Path
import structlog
from relnotes.exceptions import OutputError

log = structlog.get_logger(__name__)

def write_to_stdout(text_content: str):
    # writes rendered notes to standard output.
    try:
        sys.stdout.write(text_content)
        sys.stdout.flush()
    except UnicodeEncodeError as e:
        log.warning("stdout_write_failed_trying_binary_fallback", error=str(e))
        sys.stdout.buffer.write(text_content.encode("utf-8", errors="replace"))
        sys.stdout.buffer.flush()

def write_to_file(output_file_path: Path, text_content: str):
    # writes rendered notes to the given path, creating parent directories.
    log.info("writing_output_to_file", path=str(output_file_path))
    try:
        output_file_path.parent.mkdir(parents=True, exist_ok=True)
        output_file_path.write_text(text_content, encoding="utf-8")
    except OSError as e:
        raise OutputError(f"failed to write to file '{output_file_path}': {e}") from e
