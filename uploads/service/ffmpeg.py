"""
Thin wrappers around the ffmpeg and ffprobe executables.

run_ffmpeg() streams ffmpeg's machine-readable progress output so callers
get a percentage while the encoder runs, and kills the subprocess when the
caller asks for cancellation.
"""
import json
import subprocess
import threading
from collections import deque
from pathlib import Path

from uploads.errors import EncodeCancelled, EncodeFailure

# Number of stderr lines kept for the failure message
STDERR_TAIL = 20

# Seconds between checks of should_cancel while ffmpeg runs
CANCEL_POLL_INTERVAL = 0.25


def probe_duration(file_path, ffprobe_binary='ffprobe'):
    """
    Extract duration from media file using ffprobe.

    Returns:
        float: Duration in seconds, or None if extraction fails
    """
    try:
        result = subprocess.run([
            ffprobe_binary,
            '-v', 'quiet',
            '-print_format', 'json',
            '-show_format',
            str(file_path)
        ], capture_output=True, text=True, check=True, timeout=30)

        metadata = json.loads(result.stdout)

        if 'format' in metadata and 'duration' in metadata['format']:
            return float(metadata['format']['duration'])

        return None
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, ValueError, KeyError, OSError):
        return None


def parse_progress_line(line, duration):
    """
    Turn one line of `ffmpeg -progress` output into a percentage.

    Returns:
        float or None: percent complete, None if the line carries no position
    """
    key, _, value = line.strip().partition('=')
    if key not in ('out_time_us', 'out_time_ms') or not duration:
        return None
    try:
        # Both keys are reported in microseconds
        position = int(value) / 1_000_000
    except ValueError:
        return None
    if position < 0:
        return None
    return min(100.0, position / duration * 100)


def run_ffmpeg(args, duration=None, on_progress=None, should_cancel=None,
               ffmpeg_binary='ffmpeg', logger=None):
    """
    Run ffmpeg to completion.

    stderr is drained on its own thread so a chatty decoder can never fill
    the pipe and stall the encoder. A watcher thread polls should_cancel and
    kills the process even while ffmpeg prints no progress.

    Args:
        args: ffmpeg arguments after the binary (inputs, filters, output)
        duration: expected output duration in seconds, used for percentages
        on_progress: Optional callable(percent) for progress reports
        should_cancel: Optional thread-safe callable() -> bool
        ffmpeg_binary: ffmpeg executable
        logger: Optional callable(str) for logging

    Raises:
        EncodeCancelled: if should_cancel() returned True
        EncodeFailure: if ffmpeg could not be started or exited non-zero
    """
    def log(message):
        if logger:
            logger(message)

    cmd = [
        ffmpeg_binary, '-hide_banner', '-loglevel', 'error',
        '-nostats', '-progress', 'pipe:1', '-y',
    ] + list(args)
    log(f"Running: {' '.join(cmd)}")

    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise EncodeFailure(f'Could not start {ffmpeg_binary}: {e}')

    stderr_tail = deque(maxlen=STDERR_TAIL)
    cancelled = threading.Event()
    finished = threading.Event()

    def drain_stderr():
        for line in process.stderr:
            stderr_tail.append(line.rstrip('\n'))

    def watch_cancel():
        while not finished.wait(CANCEL_POLL_INTERVAL):
            if process.poll() is not None:
                return
            if should_cancel():
                cancelled.set()
                process.kill()
                return

    helpers = [threading.Thread(target=drain_stderr, name='ffmpeg-stderr', daemon=True)]
    if should_cancel:
        helpers.append(threading.Thread(target=watch_cancel, name='ffmpeg-cancel', daemon=True))
    for thread in helpers:
        thread.start()

    try:
        for line in process.stdout:
            if cancelled.is_set():
                break
            if should_cancel and should_cancel():
                cancelled.set()
                process.kill()
                break
            percent = parse_progress_line(line, duration)
            if percent is not None and on_progress:
                on_progress(percent)
        process.wait()
    except BaseException:
        process.kill()
        process.wait()
        raise
    finally:
        finished.set()
        for thread in helpers:
            thread.join()

    if cancelled.is_set():
        raise EncodeCancelled()

    if process.returncode != 0:
        stderr_text = '\n'.join(stderr_tail)
        log(f"ffmpeg stderr: {stderr_text}")
        raise EncodeFailure(
            f"ffmpeg failed with code {process.returncode}",
            returncode=process.returncode,
            stderr=stderr_text,
        )


def extract_frame(input_path, output_path, offset, ffmpeg_binary='ffmpeg', logger=None):
    """
    Write a single still frame at `offset` seconds to output_path.

    Falls back to the first frame when the source is shorter than the offset.

    Returns:
        Path to the written frame
    """
    def log(message):
        if logger:
            logger(message)

    output_path = Path(output_path)

    for seek in (offset, 0):
        cmd = [
            ffmpeg_binary,
            '-hide_banner',
            '-loglevel', 'error',
            '-y',
            '-ss', str(seek),
            '-i', str(input_path),
            '-frames:v', '1',
            str(output_path),
        ]
        log(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise EncodeFailure(f'Could not start {ffmpeg_binary}: {e}')

        if result.returncode != 0:
            log(f"ffmpeg stderr: {result.stderr}")
            raise EncodeFailure(
                f"ffmpeg frame extraction failed with code {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        if output_path.exists() and output_path.stat().st_size > 0:
            return output_path
        if seek == 0:
            break
        log(f"No frame at {seek}s, retrying from the start")

    raise EncodeFailure('ffmpeg produced no still frame')
