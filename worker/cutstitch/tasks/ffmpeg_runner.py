"""
FFmpeg Runner with Timeout and Cancellation

Runs FFmpeg commands with:
- Progress tracking via -progress pipe:1
- Strict timeout enforcement
- Cooperative cancellation through a threading.Event
- Process group management for clean termination
- Captured stderr on failure

This is the primary protection against runaway FFmpeg processes.
"""

import logging
import os
import re
import signal
import subprocess
import threading
import time
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000
STALL_WARNING_SECONDS = 60

ProgressCallback = Callable[[int, str], None]


class FFmpegError(Exception):
    """Raised when FFmpeg fails with a non-zero exit code."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class FFmpegTimeout(FFmpegError):
    """Raised when FFmpeg exceeds the allowed timeout."""


class FFmpegCancelled(FFmpegError):
    """Raised when the caller's cancel event is set mid-encode."""


def _noop_progress(percent: int, message: str) -> None:
    pass


def run_ffmpeg_with_progress(
    cmd: List[str],
    total_duration_ms: int,
    progress_callback: Optional[ProgressCallback] = None,
    timeout_seconds: int = 1800,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """
    Run FFmpeg command with progress tracking, timeout and cancellation.

    This function:
    1. Adds -progress pipe:1 to capture progress output
    2. Runs FFmpeg in its own process group for clean termination
    3. Parses progress output (preferring out_time_us for accuracy)
    4. Calls progress_callback with percent and message
    5. Kills the process group on timeout or when cancel_event is set

    Args:
        cmd: FFmpeg command as list of arguments (without -progress)
        total_duration_ms: Expected total duration in milliseconds
        progress_callback: Function called with (percent, message)
        timeout_seconds: Maximum allowed runtime in seconds
        cancel_event: Optional event; when set, the encode is aborted

    Raises:
        FFmpegTimeout: If FFmpeg exceeds the timeout
        FFmpegCancelled: If cancel_event was set
        FFmpegError: If FFmpeg fails with non-zero exit code

    Example:
        run_ffmpeg_with_progress(
            cmd=["ffmpeg", "-y", "-i", "input.mp4", "output.mp4"],
            total_duration_ms=10000,
            progress_callback=lambda p, m: print(f"{p}% - {m}"),
            timeout_seconds=300,
        )
    """
    progress_callback = progress_callback or _noop_progress

    # -progress pipe:1 writes key=value progress to stdout
    # -stats_period 0.5 updates every 500ms
    cmd_with_progress = cmd + ["-progress", "pipe:1", "-stats_period", "0.5"]

    logger.info(f"Starting FFmpeg with timeout={timeout_seconds}s, duration={total_duration_ms}ms")
    logger.debug(f"FFmpeg command: {' '.join(cmd_with_progress)}")

    if cancel_event is not None and cancel_event.is_set():
        raise FFmpegCancelled("FFmpeg cancelled before start")

    try:
        process = subprocess.Popen(
            cmd_with_progress,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            preexec_fn=os.setsid,
        )
    except OSError as e:
        raise FFmpegError(f"FFmpeg could not be started: {e}", stderr=str(e))

    time_us_pattern = re.compile(r"out_time_us=(\d+)")
    time_ms_pattern = re.compile(r"out_time_ms=(\d+)")
    time_str_pattern = re.compile(r"out_time=(\d+):(\d+):(\d+)\.(\d+)")
    progress_pattern = re.compile(r"progress=(\w+)")

    start_time = time.time()
    last_percent = 0
    last_progress_time = start_time

    try:
        for line in process.stdout:
            line = line.strip()

            elapsed = time.time() - start_time
            if elapsed > timeout_seconds:
                logger.warning(f"FFmpeg timeout after {elapsed:.1f}s (limit: {timeout_seconds}s)")
                _kill_process_group(process)
                raise FFmpegTimeout(f"FFmpeg exceeded timeout of {timeout_seconds} seconds")

            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"FFmpeg cancelled after {elapsed:.1f}s")
                _kill_process_group(process)
                raise FFmpegCancelled("FFmpeg cancelled by caller")

            progress_match = progress_pattern.search(line)
            if progress_match and progress_match.group(1) == "end":
                progress_callback(100, "Encode complete")
                logger.info("FFmpeg signaled completion")
                break

            current_ms = _parse_progress_time(
                line, time_us_pattern, time_ms_pattern, time_str_pattern
            )

            if current_ms is not None and total_duration_ms > 0:
                percent = min(99, int((current_ms / total_duration_ms) * 100))
                if percent > last_percent:
                    last_percent = percent
                    last_progress_time = time.time()
                    progress_callback(percent, f"Encoding: {percent}%")

            if time.time() - last_progress_time > STALL_WARNING_SECONDS:
                logger.warning(f"FFmpeg appears stalled (no progress for {STALL_WARNING_SECONDS}s)")

        # All stdout read but the process may not have exited yet
        try:
            return_code = process.wait(timeout=30)
        except subprocess.TimeoutExpired:
            logger.warning("FFmpeg cleanup timeout, killing process")
            _kill_process_group(process)
            raise FFmpegTimeout("FFmpeg process cleanup timed out")

        if return_code != 0:
            stderr_output = process.stderr.read() or ""
            stderr_tail = stderr_output[-STDERR_TAIL_CHARS:]
            error_msg = f"FFmpeg failed with code {return_code}"
            if stderr_tail:
                error_msg += f": {stderr_tail}"
            logger.error(error_msg)
            raise FFmpegError(error_msg, returncode=return_code, stderr=stderr_tail)

        elapsed = time.time() - start_time
        logger.info(f"FFmpeg completed successfully in {elapsed:.1f}s")
        progress_callback(100, "Complete")

    except FFmpegError:
        raise

    except Exception as e:
        logger.error(f"Unexpected error during FFmpeg execution: {e}", exc_info=True)
        _kill_process_group(process)
        raise FFmpegError(f"FFmpeg error: {str(e)}")

    finally:
        if process.stdout:
            process.stdout.close()
        if process.stderr:
            process.stderr.close()


def _parse_progress_time(
    line: str,
    time_us_pattern: re.Pattern,
    time_ms_pattern: re.Pattern,
    time_str_pattern: re.Pattern,
) -> Optional[int]:
    """
    Parse current output time from FFmpeg progress line.

    Tries multiple formats in order of preference:
    1. out_time_us (microseconds) - most accurate
    2. out_time_ms (despite the name, also microseconds in current FFmpeg)
    3. out_time (HH:MM:SS.microseconds string)

    Returns:
        Current time in milliseconds, or None if not found
    """
    match = time_us_pattern.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = time_ms_pattern.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = time_str_pattern.search(line)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2))
        seconds = int(match.group(3))
        micro_str = match.group(4).ljust(6, "0")[:6]
        return (
            hours * 3600000
            + minutes * 60000
            + seconds * 1000
            + int(micro_str) // 1000
        )

    return None


def _kill_process_group(process: subprocess.Popen) -> None:
    """
    Kill FFmpeg process and its entire process group.

    Uses SIGKILL to ensure immediate termination.
    """
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process already terminated")
    except OSError as e:
        logger.warning(f"Error killing process group: {e}")
        try:
            process.kill()
        except OSError:
            logger.debug("Fallback kill failed; process likely gone")
    try:
        process.wait(timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning(f"FFmpeg process {process.pid} did not exit after SIGKILL")


def validate_ffmpeg_available(ffmpeg_path: str = "ffmpeg") -> bool:
    """
    Check if FFmpeg is available and working.

    Returns:
        True if FFmpeg is available, False otherwise
    """
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
