"""
Video and GIF pipeline.

Takes a still frame for the image thumbnails, then runs every encode in
parallel: two compressed renditions, two short thumbnail videos, and for
GIF targets a palette-optimized GIF. Encoder threads report progress over a
channel; the calling thread averages the reports and only ever moves the
task's progress forward.
"""
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import math
import queue
import shutil
import threading

from uploads.errors import EncodeCancelled, EncodeFailure
from uploads.service.constants import TYPE_GIF, TYPE_VIDEO
from uploads.service.ffmpeg import extract_frame, probe_duration, run_ffmpeg
from uploads.service.image import create_thumbnails, load_image
from uploads.service.results import PipelineResult, relative_height

# Seconds between checks of the progress channel and the cancel flag
POLL_INTERVAL = 0.25

MP4_VIDEO_OPTIONS = [
    '-pix_fmt', 'yuv420p',
    '-fps_mode', 'cfr',
    '-c:v', 'libx264',
    '-profile:v', 'main',
    '-tune', 'film',
    '-g', '60',
    '-x264opts', 'no-scenecut',
    '-max_muxing_queue_size', '1024',
    '-movflags', '+faststart',
    '-f', 'mp4',
]
MP4_AUDIO_OPTIONS = ['-c:a', 'aac', '-ac', '2', '-ar', '44100']

WEBM_VIDEO_OPTIONS = [
    '-pix_fmt', 'yuv420p',
    '-fps_mode', 'cfr',
    '-c:v', 'libvpx-vp9',
    '-cpu-used', '2',
    '-row-mt', '1',
    '-max_muxing_queue_size', '1024',
    '-f', 'webm',
]
WEBM_AUDIO_OPTIONS = ['-c:a', 'libopus']

# (video bitrate, bufsize, maxrate, audio bitrate)
BITRATES = {
    ('compressed', 'mp4'): ('2500k', '2000k', '4500k', '192k'),
    ('compressed', 'webm'): ('2000k', '1000k', '3000k', '192k'),
    ('thumbnail', 'mp4'): ('625k', '500k', '1000k', '96k'),
    ('thumbnail', 'webm'): ('500k', '250k', '750k', '96k'),
}


@dataclass
class EncodeJob:
    """One ffmpeg run producing one rendition"""
    category: str
    ext: str
    output_path: Path
    args: list
    duration: Optional[float] = None

    @property
    def name(self):
        return f'{self.category}.{self.ext}'


class ProgressAggregator:
    """
    Averages the latest percentage of every encode job.

    Stale or lower reports for a job are dropped, and the combined value is
    only reported when it grows, so progress never regresses when jobs
    finish out of order.
    """

    def __init__(self, job_count, callback=None):
        self._progress = [0.0] * job_count
        self._callback = callback
        self.value = 0

    def update(self, index, percent):
        if percent is None or math.isnan(percent):
            return
        percent = min(float(percent), 100.0)
        if percent <= self._progress[index]:
            return
        self._progress[index] = percent

        average = math.floor(sum(self._progress) / len(self._progress))
        if average > self.value:
            self.value = average
            if self._callback:
                self._callback(average)

    def finish(self):
        if self.value < 100:
            self.value = 100
            if self._callback:
                self._callback(100)


def even(value):
    """Round down to an even pixel count (yuv420p needs even dimensions)"""
    value = int(value)
    return max(2, value - value % 2)


def build_encode_jobs(input_path, directory, target_type, width, height, duration, config):
    """
    Build the ffmpeg argument lists for every rendition of a video or GIF.

    Returns:
        list[EncodeJob]
    """
    directory = Path(directory)
    with_audio = target_type == TYPE_VIDEO
    output_height = even(min(height, config.video_max_height))
    thumbnail_width = even(min(width, config.video_thumbnail_width))
    thumbnail_duration = config.video_thumbnail_duration
    if duration:
        thumbnail_duration_expected = min(duration, thumbnail_duration)
    else:
        thumbnail_duration_expected = None

    jobs = []
    renditions = [
        ('compressed', 'mp4', directory / 'video.mp4'),
        ('compressed', 'webm', directory / 'video.webm'),
        ('thumbnail', 'mp4', directory / 'video_thumbnail.mp4'),
        ('thumbnail', 'webm', directory / 'video_thumbnail.webm'),
    ]
    for category, ext, output_path in renditions:
        video_bitrate, bufsize, maxrate, audio_bitrate = BITRATES[(category, ext)]

        if category == 'compressed':
            scale = f'scale=-2:{output_height}'
            limit = []
            expected = duration
        else:
            scale = f'scale={thumbnail_width}:-2'
            limit = ['-t', str(thumbnail_duration)]
            expected = thumbnail_duration_expected

        if ext == 'mp4':
            video_options, audio_options = MP4_VIDEO_OPTIONS, MP4_AUDIO_OPTIONS
        else:
            video_options, audio_options = WEBM_VIDEO_OPTIONS, WEBM_AUDIO_OPTIONS

        if with_audio:
            audio = audio_options + ['-b:a', audio_bitrate]
        else:
            audio = ['-an']

        args = (
            ['-i', str(input_path)]
            + limit
            + ['-vf', f'yadif=deint=interlaced,{scale}']
            + video_options
            + audio
            + ['-b:v', video_bitrate, '-bufsize', bufsize, '-maxrate', maxrate]
            + [str(output_path)]
        )
        jobs.append(EncodeJob(category, ext, output_path, args, expected))

    if target_type == TYPE_GIF:
        gif_width = min(width, config.gif_max_width)
        output_path = directory / 'video.gif'
        palette = (
            f'[0:v] fps={config.gif_fps},scale={gif_width}:-2:flags=lanczos,split [a][b];'
            '[a] palettegen [p];[b][p] paletteuse'
        )
        args = ['-i', str(input_path), '-filter_complex', palette, '-f', 'gif', str(output_path)]
        jobs.append(EncodeJob('compressed', 'gif', output_path, args, duration))

    return jobs


def run_encode_jobs(jobs, config, on_progress=None, should_cancel=None, logger=None):
    """
    Run every encode job in parallel and wait for all of them.

    Progress reports from the encoder threads go through a queue and are
    aggregated here, on the calling thread. The first failure stops the
    remaining encoders.

    Raises:
        EncodeFailure: the first encoder failure
        EncodeCancelled: if should_cancel() returned True
    """
    channel = queue.Queue()
    aggregator = ProgressAggregator(len(jobs), on_progress)
    abort = threading.Event()

    def reporter(index):
        return lambda percent: channel.put((index, percent))

    def drain():
        while True:
            try:
                index, percent = channel.get_nowait()
            except queue.Empty:
                return
            aggregator.update(index, percent)

    errors = []
    cancelled = False

    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix='encode') as executor:
        pending = {
            executor.submit(
                run_ffmpeg,
                job.args,
                duration=job.duration,
                on_progress=reporter(index),
                should_cancel=abort.is_set,
                ffmpeg_binary=config.ffmpeg_binary,
                logger=logger,
            )
            for index, job in enumerate(jobs)
        }

        while pending:
            drain()
            if not cancelled and should_cancel and should_cancel():
                cancelled = True
                abort.set()
            done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for future in done:
                error = future.exception()
                if error is not None:
                    errors.append(error)
                    abort.set()

    drain()

    if cancelled:
        raise EncodeCancelled()
    if errors:
        # Siblings stopped by the abort flag report EncodeCancelled; prefer the real cause
        real = [e for e in errors if not isinstance(e, EncodeCancelled)]
        error = (real or errors)[0]
        if isinstance(error, EncodeFailure):
            raise error
        raise EncodeFailure(f'Encoder failed: {error}') from error

    aggregator.finish()


def process_video(input_path, directory, config, target_type=TYPE_VIDEO,
                  on_progress=None, should_cancel=None, logger=None):
    """
    Run the video/GIF pipeline.

    Args:
        input_path: Path to the uploaded original
        directory: scratch directory for this task
        config: ProcessingConfig
        target_type: 'VIDEO' or 'GIF'
        on_progress: Optional callable(percent), called on this thread
        should_cancel: Optional callable() -> bool, polled on this thread
        logger: Optional callable(str) for logging

    Returns:
        PipelineResult
    """
    def log(message):
        if logger:
            logger(message)

    directory = Path(directory)
    frame_dir = directory / 'frame'
    frame_dir.mkdir(parents=True, exist_ok=True)

    try:
        frame_path = extract_frame(
            input_path,
            frame_dir / 'thumb.png',
            config.frame_offset,
            ffmpeg_binary=config.ffmpeg_binary,
            logger=logger,
        )
        frame = load_image(frame_path)
        width, height = frame.size
        log(f'Frame dimensions: {width}x{height}')
        still_thumbnails = create_thumbnails(frame, directory, config, logger=logger)
    finally:
        shutil.rmtree(frame_dir, ignore_errors=True)

    duration = probe_duration(input_path, ffprobe_binary=config.ffprobe_binary)
    log(f'Duration: {duration}')

    jobs = build_encode_jobs(input_path, directory, target_type, width, height, duration, config)
    log(f"Encoding {len(jobs)} renditions: {', '.join(job.name for job in jobs)}")

    run_encode_jobs(jobs, config, on_progress=on_progress, should_cancel=should_cancel, logger=logger)

    compressed = {}
    thumbnail = dict(still_thumbnails)
    for job in jobs:
        if job.category == 'compressed':
            compressed[job.ext] = job.output_path
        else:
            thumbnail[job.ext] = job.output_path

    return PipelineResult(
        target_type=target_type,
        original=Path(input_path),
        rel_height=relative_height(width, height),
        width=width,
        height=height,
        created_files={
            'compressed': compressed,
            'thumbnail': thumbnail,
        },
    )
